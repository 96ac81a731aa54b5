from __future__ import annotations
from dataclasses import dataclass, field
from typing import Dict, Optional

from .types import Usage

@dataclass
class ModelUsage:
    model: str
    input_tokens: int = 0
    output_tokens: int = 0
    cache_creation_input_tokens: int = 0
    cache_read_input_tokens: int = 0
    turns: int = 0

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens

    def add(self, usage: Usage) -> None:
        self.input_tokens += usage.input_tokens
        self.output_tokens += usage.output_tokens
        self.cache_creation_input_tokens += usage.cache_creation_input_tokens or 0
        self.cache_read_input_tokens += usage.cache_read_input_tokens or 0
        self.turns += 1

@dataclass
class UsageTotals:
    by_model: Dict[str, ModelUsage] = field(default_factory=dict)

    def add(self, model: str, usage: Usage) -> None:
        if model not in self.by_model:
            self.by_model[model] = ModelUsage(model=model)
        self.by_model[model].add(usage)

    def get(self, model: str) -> Optional[ModelUsage]:
        return self.by_model.get(model)

    @property
    def input_tokens(self) -> int:
        return sum(u.input_tokens for u in self.by_model.values())

    @property
    def output_tokens(self) -> int:
        return sum(u.output_tokens for u in self.by_model.values())

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens

    @property
    def turns(self) -> int:
        return sum(u.turns for u in self.by_model.values())

    def copy(self) -> "UsageTotals":
        return UsageTotals(by_model={
            k: ModelUsage(**vars(v)) for k, v in self.by_model.items()
        })
