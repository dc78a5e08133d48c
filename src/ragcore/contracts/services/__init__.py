from .embedding import EmbeddingClientProtocol

__all__ = ["EmbeddingClientProtocol"]
