from zkvote_toolkit.registry.decoder import LeafDecoder
from zkvote_toolkit.registry.log_retriever import LogRetriever

__all__ = ["LeafDecoder", "LogRetriever"]
