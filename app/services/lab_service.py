"""Virtual chemistry bench: reagents, beakers and reactions.

Everything here is local to the process and never persisted.
"""

import logging
import random
import uuid
from collections import OrderedDict
from typing import Dict, FrozenSet, List, Optional, Tuple

from app.core.config import settings
from app.core.errors import NotFoundError
from app.models.lab import BeakerState, BenchState, ReactionResult, Reagent, ReagentType

logger = logging.getLogger(__name__)

TRANSPARENT = "transparent"
DEFAULT_REAGENT_VOLUME = 50
ROOM_TEMPERATURE = 25.0

REAGENTS: List[Reagent] = [
    Reagent(id="hcl", name="Hydrochloric Acid", formula="HCl", color="#ff6b6b", type=ReagentType.ACID, volume=50),
    Reagent(id="naoh", name="Sodium Hydroxide", formula="NaOH", color="#4ecdc4", type=ReagentType.BASE, volume=50),
    Reagent(id="h2so4", name="Sulfuric Acid", formula="H₂SO₄", color="#ff8c42", type=ReagentType.ACID, icon="⚠️", volume=50),
    Reagent(id="ca_oh_2", name="Calcium Hydroxide", formula="Ca(OH)₂", color="#95e1d3", type=ReagentType.BASE, volume=50),
    Reagent(id="phenol", name="Phenolphthalein", formula="C₂₀H₁₄O₄", color="#c44569", type=ReagentType.INDICATOR, icon="💧", volume=10),
    Reagent(id="h2o", name="Distilled Water", formula="H₂O", color="#74b9ff", type=ReagentType.WATER, icon="💧", volume=100),
    Reagent(id="zn", name="Zinc Metal", formula="Zn", color="#a4b0be", type=ReagentType.METAL, icon="🔩", volume=25),
    Reagent(id="cu", name="Copper Sulfate", formula="CuSO₄", color="#3742fa", type=ReagentType.SALT, icon="💎", volume=30),
]
REAGENTS_BY_ID: Dict[str, Reagent] = {reagent.id: reagent for reagent in REAGENTS}

# Unordered colour pairs with a known mix.
COLOR_PAIRS: Dict[FrozenSet[str], str] = {
    frozenset({"#ff6b6b", "#4ecdc4"}): "#98fb98",  # acid + base, neutral green
    frozenset({"#ff8c42", "#95e1d3"}): "#ffd93d",  # strong neutralisation, yellow
}
# A colour that dominates whatever it is mixed with.
DOMINANT_COLORS: List[Tuple[str, str]] = [
    ("#c44569", "#ff69b4"),  # indicator turns pink
    ("#a4b0be", "#87ceeb"),  # metal, sky blue
]
DEFAULT_MIX_COLOR = "#dda0dd"

REACTING_TYPES: List[FrozenSet[ReagentType]] = [
    frozenset({ReagentType.ACID, ReagentType.BASE}),
    frozenset({ReagentType.ACID, ReagentType.METAL}),
    frozenset({ReagentType.SALT, ReagentType.WATER}),
]

# Checked in order: the first entry whose formulas are all present wins.
REACTIONS: List[Tuple[FrozenSet[str], ReactionResult]] = [
    (frozenset({"HCl", "NaOH"}), ReactionResult(name="Acid-Base Neutralization", color="#98fb98", product="NaCl + H₂O")),
    (frozenset({"HCl", "Zn"}), ReactionResult(name="Metal-Acid Reaction", color="#87ceeb", product="ZnCl₂ + H₂")),
    (frozenset({"CuSO₄", "H₂O"}), ReactionResult(name="Salt Dissolution", color="#4169e1", product="Cu²⁺ + SO₄²⁻")),
]
FALLBACK_REACTION = ReactionResult(name="Mixed Solution", color=DEFAULT_MIX_COLOR, product="Complex mixture")


class LabError(Exception):
    """A bench action that cannot be carried out."""


def mix_colors(first: str, second: str) -> str:
    if first == TRANSPARENT:
        return second
    if second == TRANSPARENT:
        return first

    pair = frozenset({first, second})
    if pair in COLOR_PAIRS:
        return COLOR_PAIRS[pair]
    for color, result in DOMINANT_COLORS:
        if color in pair:
            return result
    return DEFAULT_MIX_COLOR


def has_reaction(reagents: List[Reagent]) -> bool:
    types = {reagent.type for reagent in reagents}
    return any(pair <= types for pair in REACTING_TYPES)


def find_reaction(reagents: List[Reagent]) -> ReactionResult:
    formulas = sorted(reagent.formula for reagent in reagents)
    present = set(formulas)
    for required, result in REACTIONS:
        if required <= present:
            return result
    return FALLBACK_REACTION


class Beaker:
    def __init__(self, beaker_id: int, capacity: Optional[int] = None, rng: Optional[random.Random] = None):
        self.id = beaker_id
        self.capacity = capacity or settings.beaker_capacity
        self._rng = rng or random.Random()
        self.reset()

    def reset(self) -> None:
        self.reagents: List[Reagent] = []
        self.temperature = ROOM_TEMPERATURE
        self.volume = 0
        self.color = TRANSPARENT
        self.bubbling = False
        self.last_reaction: Optional[ReactionResult] = None

    def add(self, reagent: Reagent) -> None:
        if any(existing.id == reagent.id for existing in self.reagents):
            raise LabError(f"{reagent.name} is already in beaker {self.id}")

        self.reagents.append(reagent)
        self.volume = min(self.volume + (reagent.volume or DEFAULT_REAGENT_VOLUME), self.capacity)
        self.color = mix_colors(self.color, reagent.color)
        self.bubbling = len(self.reagents) > 1 and has_reaction(self.reagents)

    def conduct(self) -> ReactionResult:
        if len(self.reagents) < 2:
            raise LabError("Add at least 2 chemicals to conduct an experiment")

        reaction = find_reaction(self.reagents)
        # cosmetic heat from the reaction
        self.temperature += self._rng.random() * 30 + 10
        self.bubbling = True
        self.color = reaction.color or self.color
        self.last_reaction = reaction
        return reaction

    def state(self) -> BeakerState:
        return BeakerState(
            id=self.id,
            reagents=list(self.reagents),
            temperature=round(self.temperature, 1),
            volume=self.volume,
            color=self.color,
            bubbling=self.bubbling,
            last_reaction=self.last_reaction,
        )


class LabBench:
    def __init__(self, beakers: Optional[int] = None, capacity: Optional[int] = None, rng: Optional[random.Random] = None):
        self.bench_id = str(uuid.uuid4())
        self.capacity = capacity or settings.beaker_capacity
        self.experiments = 0
        count = beakers or settings.beakers_per_bench
        self.beakers = [Beaker(i, self.capacity, rng) for i in range(1, count + 1)]

    def beaker(self, beaker_id: int) -> Beaker:
        if not 1 <= beaker_id <= len(self.beakers):
            raise NotFoundError("beakers", str(beaker_id))
        return self.beakers[beaker_id - 1]

    def add_reagent(self, beaker_id: int, reagent_id: str) -> Beaker:
        reagent = REAGENTS_BY_ID.get(reagent_id)
        if reagent is None:
            raise NotFoundError("reagents", reagent_id)
        beaker = self.beaker(beaker_id)
        beaker.add(reagent)
        logger.debug("Added %s to beaker %s on bench %s", reagent.id, beaker_id, self.bench_id)
        return beaker

    def conduct(self, beaker_id: int) -> ReactionResult:
        reaction = self.beaker(beaker_id).conduct()
        self.experiments += 1
        return reaction

    def reset_beaker(self, beaker_id: int) -> Beaker:
        beaker = self.beaker(beaker_id)
        beaker.reset()
        return beaker

    def reset_all(self) -> None:
        for beaker in self.beakers:
            beaker.reset()

    def state(self) -> BenchState:
        return BenchState(
            bench_id=self.bench_id,
            experiments=self.experiments,
            capacity=self.capacity,
            beakers=[beaker.state() for beaker in self.beakers],
        )


class LabBenchRegistry:
    """In-process benches, least recently used evicted past ``max_benches``."""

    def __init__(self, max_benches: Optional[int] = None):
        self.max_benches = max_benches or settings.max_lab_benches
        self._benches: "OrderedDict[str, LabBench]" = OrderedDict()

    def create(self) -> LabBench:
        while len(self._benches) >= self.max_benches:
            evicted, _ = self._benches.popitem(last=False)
            logger.info("Evicted idle lab bench %s", evicted)
        bench = LabBench()
        self._benches[bench.bench_id] = bench
        return bench

    def get(self, bench_id: str) -> LabBench:
        bench = self._benches.get(bench_id)
        if bench is None:
            raise NotFoundError("lab_benches", bench_id)
        self._benches.move_to_end(bench_id)
        return bench

    def discard(self, bench_id: str) -> None:
        self.get(bench_id)
        del self._benches[bench_id]

    def __len__(self) -> int:
        return len(self._benches)


lab_benches = LabBenchRegistry()
