from .controllers import EngineController

__all__ = ["EngineController"]
