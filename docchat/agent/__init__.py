"""LLM generation for grounded answers.

Responsibilities:
    - Generator configuration from the environment
    - Agno agent construction around an OpenAI-compatible chat model
    - A narrow ``complete(system_prompt, history, user_message)`` interface
      so the retrieval pipeline never depends on Agno directly
"""

from docchat.agent.config import GeneratorConfig, get_generator_config
from docchat.agent.generator import AgnoGenerator, GenerationError, Generator

__all__ = [
    "AgnoGenerator",
    "GenerationError",
    "Generator",
    "GeneratorConfig",
    "get_generator_config",
]
