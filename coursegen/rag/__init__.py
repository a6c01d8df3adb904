"""Retrieval-augmented generation vector store."""
