"""doctrine_rag.pipelines

Pipeline orchestration components.

Pipelines coordinate document loading, indexing, retrieval and answer
generation. They hold only their configured components; every run builds
its own indexes, so one pipeline instance serves concurrent requests.

Modules
-------
rag_pipeline
    End-to-end Retrieval-Augmented Generation (RAG) pipeline.
"""
