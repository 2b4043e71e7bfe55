import os
from typing import List

from dotenv import load_dotenv
from pydantic import BaseModel, field_validator

from code_runner import DEFAULT_MAX_STEPS, CodeRunner
from memory import DEFAULT_HEAP_BASE, DEFAULT_HEAP_STRIDE, HeapAccessPolicy, Memory

ENV_PREFIX = "LENS_"


class Settings(BaseModel):
    heap_base: int = DEFAULT_HEAP_BASE
    heap_stride: int = DEFAULT_HEAP_STRIDE
    strict_heap: bool = False
    max_steps: int = DEFAULT_MAX_STEPS
    max_sessions: int = 64
    log_level: str = "INFO"
    cors_origins: List[str] = ["*"]

    @field_validator("heap_base", "heap_stride", mode="before")
    @classmethod
    def parse_address(cls, value):
        # accepts "4096" as well as "0x1000"
        if isinstance(value, str):
            return int(value, 0)
        return value

    @field_validator("cors_origins", mode="before")
    @classmethod
    def split_origins(cls, value):
        if isinstance(value, str):
            return [origin.strip() for origin in value.split(",") if origin.strip()]
        return value

    @property
    def heap_policy(self) -> HeapAccessPolicy:
        return HeapAccessPolicy.STRICT if self.strict_heap else HeapAccessPolicy.PERMISSIVE

    def make_runner(self) -> CodeRunner:
        memory = Memory(base=self.heap_base, stride=self.heap_stride, policy=self.heap_policy)
        return CodeRunner(memory=memory, max_steps=self.max_steps)


def load_settings() -> Settings:
    """Read LENS_* settings from the environment (and a .env file if present)."""
    load_dotenv()
    values = {}
    for name in Settings.model_fields:
        raw = os.getenv(ENV_PREFIX + name.upper())
        if raw is not None:
            values[name] = raw
    return Settings(**values)
