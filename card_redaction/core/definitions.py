# card_redaction/core/definitions.py

"""Constants shared by the detection, location and rendering stages."""


class BlockKind:
    """Kinds of recognized text blocks."""

    WORD = "WORD"
    LINE = "LINE"
    SYNTHETIC = "SYNTHETIC"


class ElementKind:
    """Whether a redaction element has real page geometry."""

    LOCATED = "LOCATED"
    SYNTHETIC = "SYNTHETIC"


class ContentType:
    """Input/output container formats accepted by the pipeline."""

    PDF = "application/pdf"
    JPEG = "image/jpeg"
    JPG = "image/jpg"
    PNG = "image/png"
    TIFF = "image/tiff"

    SUPPORTED = (PDF, JPEG, JPG, PNG, TIFF)

    # Filename suffix lookup used when no explicit content type is given
    BY_SUFFIX = {
        ".pdf": PDF,
        ".jpg": JPEG,
        ".jpeg": JPEG,
        ".png": PNG,
        ".tif": TIFF,
        ".tiff": TIFF,
    }

    # Pillow format names used when saving raster outputs
    PIL_FORMATS = {
        JPEG: "JPEG",
        JPG: "JPEG",
        PNG: "PNG",
        TIFF: "TIFF",
    }


class TextractFeature:
    """Feature types accepted by the Textract AnalyzeDocument call."""

    FORMS = "FORMS"
    TABLES = "TABLES"
    QUERIES = "QUERIES"
    SIGNATURES = "SIGNATURES"
    LAYOUT = "LAYOUT"

    ALL = (FORMS, TABLES, QUERIES, SIGNATURES, LAYOUT)
