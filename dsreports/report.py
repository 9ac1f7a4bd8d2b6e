"""
HTML Report Module
==================

Writes one self-contained HTML page per report: headings, prose, tables
and figures (PNG embedded as base64) in the order they were added.
"""

import base64
import html
import io
import logging
from datetime import datetime
from pathlib import Path
from typing import List, Optional

import matplotlib
matplotlib.use('Agg')
import matplotlib.pyplot as plt
import pandas as pd

logger = logging.getLogger(__name__)

STYLE = [
    "body{font-family:Georgia, 'Times New Roman', serif;max-width:960px;margin:24px auto;padding:0 16px;line-height:1.55;color:#1f2937;}",
    "h1{margin:0 0 4px 0} h2{margin:32px 0 8px;border-bottom:1px solid #e5e7eb;padding-bottom:4px;} h3{margin:18px 0 6px;}",
    ".meta{color:#6b7280;font-size:13px;margin-bottom:24px;}",
    "table.dataframe{border-collapse:collapse;margin:12px 0;font-family:Arial, sans-serif;font-size:13px;}",
    "table.dataframe th, table.dataframe td{border:1px solid #e5e7eb;padding:4px 10px;text-align:right;}",
    "table.dataframe th{background:#f3f4f6;}",
    "figure{margin:16px 0;} img{max-width:100%;height:auto;border:1px solid #e5e7eb;border-radius:8px;}",
    "figcaption{color:#6b7280;font-size:13px;margin-top:4px;}",
    "code{background:#f3f4f6;padding:2px 6px;border-radius:6px;}",
]


def figure_to_base64(fig: plt.Figure, dpi: int = 110) -> str:
    """Encode a figure as base64 PNG and close it."""
    buffer = io.BytesIO()
    fig.savefig(buffer, format='png', dpi=dpi, bbox_inches='tight')
    plt.close(fig)
    return base64.b64encode(buffer.getvalue()).decode('ascii')


class HtmlReport:
    """
    Sequential HTML document builder.

    Blocks are appended with the ``add_*`` methods and written with ``save``.
    All text is escaped; tables come from ``DataFrame.to_html``.
    """

    def __init__(self, title: str, subtitle: Optional[str] = None):
        self.title = title
        self.subtitle = subtitle
        self.blocks: List[str] = []
        self.n_figures = 0
        self.n_tables = 0

    def add_heading(self, text: str, level: int = 2) -> 'HtmlReport':
        level = min(max(level, 2), 4)
        self.blocks.append(f"<h{level}>{html.escape(text)}</h{level}>")
        return self

    def add_paragraph(self, text: str) -> 'HtmlReport':
        if text:
            self.blocks.append(f"<p>{html.escape(text)}</p>")
        return self

    def add_list(self, items: List[str]) -> 'HtmlReport':
        if items:
            lines = "".join(f"<li>{html.escape(str(item))}</li>" for item in items)
            self.blocks.append(f"<ul>{lines}</ul>")
        return self

    def add_table(
        self,
        df: pd.DataFrame,
        caption: Optional[str] = None,
        float_format: str = '{:,.4f}',
        index: bool = True
    ) -> 'HtmlReport':
        table = df.to_html(
            index=index,
            float_format=float_format.format,
            border=0,
            na_rep='–'
        )
        if caption:
            table = f"<h4>{html.escape(caption)}</h4>\n{table}"
        self.blocks.append(table)
        self.n_tables += 1
        return self

    def add_figure(self, fig: plt.Figure, caption: Optional[str] = None) -> 'HtmlReport':
        encoded = figure_to_base64(fig)
        alt = html.escape(caption or f"Figure {self.n_figures + 1}", quote=True)
        parts = [f"<figure><img src='data:image/png;base64,{encoded}' alt='{alt}'>"]
        if caption:
            parts.append(f"<figcaption>{html.escape(caption)}</figcaption>")
        parts.append("</figure>")
        self.blocks.append("".join(parts))
        self.n_figures += 1
        return self

    def add_image_file(self, path: str, caption: Optional[str] = None) -> 'HtmlReport':
        """Embed a PNG already written to disk."""
        encoded = base64.b64encode(Path(path).read_bytes()).decode('ascii')
        alt = html.escape(caption or Path(path).name, quote=True)
        parts = [f"<figure><img src='data:image/png;base64,{encoded}' alt='{alt}'>"]
        if caption:
            parts.append(f"<figcaption>{html.escape(caption)}</figcaption>")
        parts.append("</figure>")
        self.blocks.append("".join(parts))
        self.n_figures += 1
        return self

    def render(self) -> str:
        generated = datetime.now().strftime('%Y-%m-%d %H:%M')
        meta = f"Generated {generated}"
        if self.subtitle:
            meta = f"{html.escape(self.subtitle)} • {meta}"

        page = [
            "<!doctype html><meta charset='utf-8'>",
            f"<title>{html.escape(self.title)}</title>",
            "<style>",
            *STYLE,
            "</style>",
            f"<h1>{html.escape(self.title)}</h1>",
            f"<p class='meta'>{meta}</p>",
            *self.blocks
        ]
        return "\n".join(page)

    def save(self, path: str) -> str:
        """
        Write the report to ``path``.

        Returns:
            Path of the written file
        """
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(self.render(), encoding='utf-8')
        logger.info(f"Report saved to {path} ({self.n_tables} tables, {self.n_figures} figures)")
        return str(path)
