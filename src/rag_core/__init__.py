"""Embedding generation, caching and Pinecone vector store access for RAG."""

__version__ = "0.1.0"
