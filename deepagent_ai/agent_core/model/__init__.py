from .base import ChatModel, ModelChunk, ModelResponse, ToolSpec

__all__ = ["ChatModel", "ModelChunk", "ModelResponse", "ToolSpec"]
