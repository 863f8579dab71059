from .editor import EditorMode, LayoutEditor

__version__ = "0.3.0"

__all__ = ["EditorMode", "LayoutEditor", "__version__"]
