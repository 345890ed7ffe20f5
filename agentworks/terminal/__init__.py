from .export import EXPORT_FORMATS, export_json, export_session, export_text, render_html
from .recorder import LogSubscription, SessionLogRecorder, generate_run_id

__all__ = [
    "EXPORT_FORMATS",
    "LogSubscription",
    "SessionLogRecorder",
    "export_json",
    "export_session",
    "export_text",
    "generate_run_id",
    "render_html",
]
