# File: directory_crawler/report/__init__.py
"""directory_crawler.report: генерация отчётов об обходе (JSON и HTML)."""

from __future__ import annotations

from directory_crawler.report.html_report import DEFAULT_TEMPLATE_DIR, render_html
from directory_crawler.report.json_report import render_json

__all__ = ["render_json", "render_html", "DEFAULT_TEMPLATE_DIR"]
