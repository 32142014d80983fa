from .context import RuntimeContext, build_runtime

__all__ = ["RuntimeContext", "build_runtime"]
