"""
Retrieval layer of the RAG pipeline.

This package covers everything needed to turn the field manual and the
form-field table into searchable vectors and to fetch the most relevant
chunks for a question.

Submodules
----------
document_loader
    Loads PDF pages and CSV rows as documents.
text_splitter
    Recursive separator-based chunking with character overlap.
embedder
    Embedding model wrappers.
vector_store
    In-memory cosine-similarity index.
query_expander
    Abbreviation and template-based query expansion.
memory
    Request-scoped memory context and the index wrapper using it.
retriever
    Retrieval orchestrator (expand, search, merge, deduplicate).
types
    Shared protocols.
"""
