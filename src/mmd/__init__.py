"""mermaid-serve: on-demand diagram rendering over HTTP.

Serves PNG/SVG/PDF renderings of Mermaid sources, regenerating an image only
when its source is newer than the cached copy.
"""

__version__ = "0.3.0"
