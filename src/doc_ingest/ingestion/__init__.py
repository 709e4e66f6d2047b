"""
Ingestion: the job-processing engine.

Loads a downloaded file with the loader registered for its type, splits
it into overlapping chunks and persists the embedded chunks, recording
the document status at every stage boundary.
"""
