import os, sys
ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), os.pardir, os.pardir))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)
from typing import Any, Dict, List
import pandas as pd
import plotly.express as px


def render_delay_chart(rows: List[Dict[str, Any]]):
    df = pd.DataFrame(rows)
    if df.empty:
        return None
    fig = px.bar(
        df,
        x="train_id",
        y="delay_s",
        color="priority",
        hover_data=["priority"],
        labels={"train_id": "Train", "delay_s": "Delay (s)"},
    )
    fig.update_xaxes(tickangle=-45)
    return fig
