"""
Document Control module: lifecycle and approval workflow engine.

- Documents are numbered per document type (PREFIX-00001) and versioned per lineage:
  prototype lineages use letters (vA, vB, ...), production lineages use numbers (v1, v2, ...)
- Draft -> In Approval -> Released -> Obsolete; a rejection returns the document to Draft
- Released rows are immutable; a change means a new version, which supersedes its predecessor on release
- Every mutation is recorded to the append-only audit log
"""
