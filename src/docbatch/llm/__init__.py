"""Provider access for docbatch: the OpenAI Batch API client and prompt builders."""

from docbatch.llm.batch import batch_process
from docbatch.llm.openai_batch import BatchClient, OpenAIBatchClient
from docbatch.llm.prompts import PromptBuilder, get_prompt_builder

__all__ = [
    "BatchClient",
    "OpenAIBatchClient",
    "PromptBuilder",
    "batch_process",
    "get_prompt_builder",
]
