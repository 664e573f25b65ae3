"""Batch job lifecycle: submit, probe, retrieve, match, commit, archive.

Import from the submodules directly (``docbatch.batch.coordinator``,
``docbatch.batch.store`` ...); the provider client in ``docbatch.llm``
depends on ``docbatch.batch.errors``.
"""
