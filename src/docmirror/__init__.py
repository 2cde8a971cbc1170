"""docmirror: mirror a Markdown documentation tree into Notion."""

__version__ = "0.3.0"
