# ===================================== IMPORTS ====================================== #

# Standard Library Imports
import logging
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Union

# Third Party Imports
import colorcet as cc
import numpy as np
import plotly.graph_objects as go
import plotly.io as pio

# Local Imports
from symbiont_its2 import constants

# ========================== INITIALIZATION & CONFIGURATION ========================== #

logger = logging.getLogger('symbiont_its2')

# ================================= GLOBAL VARIABLES ================================= #

largecolorset = list(
  cc.glasbey + cc.glasbey_light + cc.glasbey_warm + cc.glasbey_cool + cc.glasbey_dark
)

# Define the plot template
pio.templates["reef"] = go.layout.Template(
  layout={
    'title': {
      'font': {
        'family': 'HelveticaNeue-CondensedBold, Helvetica, Sans-serif',
        'size': 40,
        'color': '#000' # Black
      }
    },
    'font': {
      'family': 'Helvetica Neue, Helvetica, Sans-serif',
      'size': 26,
      'color' : '#000'
    },
    'paper_bgcolor': 'rgba(0, 0, 0, 0)', # Transparent
    'plot_bgcolor': '#fff', # White
    'colorway': largecolorset,
    'xaxis': {
      'showgrid': False,
      'zeroline': True,
      'showline': True,
      'linewidth': 2,
      'linecolor': 'black',
      'automargin': True,
      'mirror': True
    },
    'yaxis': {
      'showgrid': False,
      'zeroline': True,
      'showline': True,
      'linewidth': 2,
      'linecolor': 'black',
      'automargin': True,
      'mirror': True
    }
  }
)

# ==================================== FUNCTIONS ===================================== #

def taxon_palette(
    taxa: Sequence[str],
    seed: Optional[int] = None,
    color_set: List[str] = largecolorset
) -> Dict[str, str]:
    """
    Deterministic color assignment for an ordered list of taxa.

    Colors are taken from `color_set` in order, or from a permutation of it drawn
    with `seed`. The same taxa, order and seed always give the same mapping, and
    no global state is touched.

    Args:
        taxa:      Ordered taxon (or group) names; duplicates keep their first color.
        seed:      Optional seed for shuffling the color set.
        color_set: Colors to draw from, cycled when there are more taxa.

    Returns:
        Dictionary mapping taxon → color.
    """
    colors = list(color_set)
    if seed is not None:
        order = np.random.default_rng(seed).permutation(len(colors))
        colors = [colors[i] for i in order]
    palette: Dict[str, str] = {}
    for taxon in taxa:
        if taxon not in palette:
            palette[taxon] = colors[len(palette) % len(colors)]
    return palette


def plotly_show_and_save(
    fig: go.Figure,
    show: bool = False,
    output_path: Union[str, Path] = None,
    save_as: List[str] = ['png', 'html'],
    scale: int = 3,
    verbose: bool = False,
    **write_kwargs
) -> None:
    """
    Save a Plotly figure to PNG and/or HTML formats and optionally display it.

    Args:
        fig:            Plotly Figure object to be saved/displayed.
        show:           Whether to display the figure (default: False).
        output_path:    Base output path for files; format-specific extensions
                        are appended. Directory will be created if needed.
        save_as:        List of formats to save ('png', 'html', 'svg', 'pdf').
        scale:          DPI‑like scale factor for raster outputs.
        verbose:        If True, logs success messages; errors are always logged.
        **write_kwargs: Extra args forwarded to `fig.write_image` / `fig.write_html`.

    Notes:
        - Saving static images requires kaleido.
    """
    if output_path:
        output_path = Path(output_path).expanduser().resolve()
        output_path.parent.mkdir(parents=True, exist_ok=True)

        log_ok = (lambda msg: logger.debug(msg)) if verbose else (lambda *_: None)

        static_exts = {"png", "jpg", "jpeg", "pdf", "svg"}
        for ext in list(static_exts) + ['html']:
            output_path = Path(str(output_path).removesuffix(f'.{ext}'))

        for ext in sorted(static_exts.intersection(save_as)):
            target = f"{output_path}.{ext}"
            try:
                fig.write_image(str(target), format=ext, scale=scale, **write_kwargs)
                log_ok(f"Saved figure to '{target}'.")
            except (ValueError, RuntimeError) as e:
                logger.error(
                    f"Failed to save figure: {str(e)}. "
                    "Make sure the export engine is installed "
                    "(e.g. `pip install -U kaleido`)."
                )

        if 'html' in save_as:
            target = f"{output_path}.html"
            fig.write_html(str(target), **write_kwargs)
            log_ok(f"Saved figure to '{target}'.")

    if show:
        fig.show()


def _apply_common_layout(
    fig: go.Figure,
    x_title: str,
    y_title: str,
    title: str = None,
    height: int = constants.DEFAULT_HEIGHT,
    width: int = constants.DEFAULT_WIDTH
) -> go.Figure:
    """Apply consistent layout to figures."""
    layout_updates = {
        'template': 'reef',
        'height': height,
        'width': width,
        'plot_bgcolor': '#fff',
    }
    if title:
        layout_updates.update({'title_text': title, 'title_x': 0.5})

    fig.update_layout(xaxis_title=x_title, yaxis_title=y_title, **layout_updates)
    return fig
