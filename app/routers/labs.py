from fastapi import APIRouter, Depends, status
from typing import List

from app.models.lab import AddReagent, BeakerState, BenchState, ReactionResult, Reagent
from app.services.lab_service import REAGENTS, LabBenchRegistry, lab_benches

router = APIRouter()


def get_lab_benches() -> LabBenchRegistry:
    return lab_benches


@router.get("/reagents", response_model=List[Reagent])
async def list_reagents():
    """Reagents available on every bench"""
    return REAGENTS


@router.post("/benches", response_model=BenchState, status_code=status.HTTP_201_CREATED)
async def create_bench(benches: LabBenchRegistry = Depends(get_lab_benches)):
    """Set up a bench with empty beakers"""
    return benches.create().state()


@router.get("/benches/{bench_id}", response_model=BenchState)
async def get_bench(bench_id: str, benches: LabBenchRegistry = Depends(get_lab_benches)):
    return benches.get(bench_id).state()


@router.delete("/benches/{bench_id}", status_code=status.HTTP_204_NO_CONTENT)
async def discard_bench(bench_id: str, benches: LabBenchRegistry = Depends(get_lab_benches)):
    benches.discard(bench_id)


@router.post("/benches/{bench_id}/reset", response_model=BenchState)
async def reset_bench(bench_id: str, benches: LabBenchRegistry = Depends(get_lab_benches)):
    """Clean every beaker on the bench"""
    bench = benches.get(bench_id)
    bench.reset_all()
    return bench.state()


@router.post("/benches/{bench_id}/beakers/{beaker_id}/reagents", response_model=BeakerState)
async def add_reagent(
    bench_id: str,
    beaker_id: int,
    payload: AddReagent,
    benches: LabBenchRegistry = Depends(get_lab_benches),
):
    """Pour a reagent into a beaker"""
    return benches.get(bench_id).add_reagent(beaker_id, payload.reagent_id).state()


@router.post("/benches/{bench_id}/beakers/{beaker_id}/conduct", response_model=ReactionResult)
async def conduct_experiment(
    bench_id: str,
    beaker_id: int,
    benches: LabBenchRegistry = Depends(get_lab_benches),
):
    """Run the experiment in a beaker holding at least two reagents"""
    return benches.get(bench_id).conduct(beaker_id)


@router.post("/benches/{bench_id}/beakers/{beaker_id}/reset", response_model=BeakerState)
async def reset_beaker(
    bench_id: str,
    beaker_id: int,
    benches: LabBenchRegistry = Depends(get_lab_benches),
):
    return benches.get(bench_id).reset_beaker(beaker_id).state()
