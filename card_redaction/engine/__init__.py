# card_redaction/engine/__init__.py

"""Engine package providing detection, location, analysis and rendering.

This package contains the components that talk to the analysis service,
rasterize input documents and draw redaction marks.
"""
