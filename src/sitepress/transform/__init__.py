"""Page and asset transforms for the static target."""

from .paths import url_to_path
from .transformer import ContentKind, TransformResult, Transformer, classify_content

__all__ = ["ContentKind", "TransformResult", "Transformer", "classify_content", "url_to_path"]
