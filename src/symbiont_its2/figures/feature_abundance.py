# ===================================== IMPORTS ====================================== #

# Standard Library Imports
import logging
from typing import Dict, List, Optional

# Third Party Imports
import pandas as pd
import plotly.express as px
import plotly.graph_objects as go

# ================================== LOCAL IMPORTS =================================== #

from symbiont_its2.constants import SAMPLE_ID_COLUMN
from symbiont_its2.figures.figures import _apply_common_layout, taxon_palette
from symbiont_its2.utils.taxonomy import to_long

# ========================== INITIALIZATION & CONFIGURATION ========================== #

logger = logging.getLogger('symbiont_its2')

# ==================================== FUNCTIONS ===================================== #

def stacked_abundance_plot(
    table: pd.DataFrame,
    sample_order: Optional[List[str]] = None,
    palette: Optional[Dict[str, str]] = None,
    seed: Optional[int] = None,
    group_name: str = 'taxon',
    title: Optional[str] = None
) -> go.Figure:
    """
    Stacked bar plot of relative abundances, one bar per sample.

    Args:
        table:        Relative abundance table (samples × taxa or groups).
        sample_order: Bar order, e.g. the leaf order of a hierarchical clustering.
        palette:      Taxon → color mapping; built with `taxon_palette` over the
                      taxa sorted by decreasing mean abundance when omitted.
        seed:         Seed forwarded to `taxon_palette`.
        group_name:   Legend title.
        title:        Plot title.
    """
    if sample_order is not None:
        table = table.reindex(sample_order)
    taxa = table.mean(axis=0).sort_values(ascending=False, kind='stable').index.tolist()
    if palette is None:
        palette = taxon_palette(taxa, seed=seed)

    long_df = to_long(table, group_name=group_name)
    long_df = long_df[long_df['abundance'] > 0]

    fig = px.bar(
        long_df,
        x=SAMPLE_ID_COLUMN,
        y='abundance',
        color=group_name,
        color_discrete_map=palette,
        category_orders={
            group_name: taxa,
            SAMPLE_ID_COLUMN: [str(s) for s in table.index],
        },
    )
    fig.update_layout(barmode='stack', bargap=0.05)
    fig.update_xaxes(showticklabels=False)
    return _apply_common_layout(fig, "Sample", "Relative abundance", title=title)
