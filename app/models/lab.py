from pydantic import BaseModel, Field
from typing import Optional, List
from enum import Enum

class ReagentType(str, Enum):
    ACID = "acid"
    BASE = "base"
    SALT = "salt"
    WATER = "water"
    INDICATOR = "indicator"
    METAL = "metal"
    GAS = "gas"

class Reagent(BaseModel):
    id: str
    name: str
    formula: str
    color: str  # hex
    type: ReagentType
    icon: str = "🧪"
    volume: Optional[int] = None  # ml

class ReactionResult(BaseModel):
    name: str
    color: str
    product: str

class BeakerState(BaseModel):
    id: int
    reagents: List[Reagent] = []
    temperature: float = 25.0
    volume: int = 0
    color: str = "transparent"
    bubbling: bool = False
    last_reaction: Optional[ReactionResult] = None

class BenchState(BaseModel):
    bench_id: str
    experiments: int = 0
    capacity: int
    beakers: List[BeakerState] = []

class AddReagent(BaseModel):
    reagent_id: str = Field(..., min_length=1)
