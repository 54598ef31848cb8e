# ===================================== IMPORTS ====================================== #

# Standard Library Imports
import logging
from typing import Any, Dict, List, Optional

# Third Party Imports
import numpy as np
import pandas as pd
import plotly.express as px
import plotly.graph_objects as go

# Local Imports
from symbiont_its2.constants import SAMPLE_ID_COLUMN
from symbiont_its2.figures.figures import _apply_common_layout, taxon_palette

# ========================== INITIALIZATION & CONFIGURATION ========================== #

logger = logging.getLogger('symbiont_its2')

# ==================================== FUNCTIONS ===================================== #

def ordination_plot(
    ordination: Dict[str, Any],
    metadata: pd.DataFrame,
    color_col: str,
    symbol_col: Optional[str] = None,
    hover_data: Optional[List[str]] = None,
    palette: Optional[Dict[str, str]] = None,
    title: Optional[str] = None
) -> go.Figure:
    """
    Scatter plot of the first two ordination axes colored by a metadata column.

    Args:
        ordination: Output of `stats.beta_diversity.nmds` / `pcoa`.
        metadata:   Sample metadata indexed by sample id.
        color_col:  Metadata column used for marker colors.
        symbol_col: Optional metadata column used for marker symbols.
        hover_data: Extra metadata columns shown on hover.
        palette:    Category → color mapping (default: `taxon_palette` over the
                    sorted categories).
        title:      Plot title.

    Returns:
        Plotly figure; low-confidence NMDS results are annotated as such.
    """
    components = ordination['components']
    x_col, y_col = components.columns[:2]
    columns = [c for c in [color_col, symbol_col, *(hover_data or [])] if c]
    data = components.join(metadata[list(dict.fromkeys(columns))], how='left')
    data[color_col] = data[color_col].astype(str)
    data = data.reset_index().rename(columns={'index': SAMPLE_ID_COLUMN})

    if palette is None:
        palette = taxon_palette(sorted(data[color_col].unique()))

    fig = px.scatter(
        data,
        x=x_col,
        y=y_col,
        color=color_col,
        symbol=symbol_col,
        color_discrete_map=palette,
        hover_data=[SAMPLE_ID_COLUMN, *(hover_data or [])],
        opacity=0.8,
    )
    stress = ordination.get('stress', np.nan)
    label = f"n = {len(data)}"
    if np.isfinite(stress):
        label += f", stress = {stress:.3f}"
    if ordination.get('low_confidence'):
        label += " (low confidence)"
    fig.add_annotation(
        text=label,
        xref="paper", yref="paper",
        x=0.99, y=0.01,
        xanchor="right", yanchor="bottom",
        showarrow=False,
        font=dict(size=18, color="black"),
        bgcolor="rgba(255,255,255,0.4)",
    )
    return _apply_common_layout(fig, x_col, y_col, title=title)
