class PageRenderError(Exception):
    """Raised when a document cannot be rendered to page images."""
