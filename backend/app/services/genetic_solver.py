from __future__ import annotations

from collections import defaultdict
from collections.abc import Iterable, Mapping, Sequence
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
import logging
import random
from time import perf_counter
from types import SimpleNamespace
from typing import Any

from app.core.exceptions import UnsatisfiableInstanceError
from app.schemas.common import normalize_day, parse_time_to_minutes
from app.schemas.generator import GenerationSettingsBase
from app.services.constraints import Placement, fits_capacity, hard_conflict_count, is_within_availability

logger = logging.getLogger(__name__)

# (room_index, day_index, slot_index)
Gene = tuple[int, int, int]


@dataclass(frozen=True)
class SectionRequest:
    index: int
    course_id: str
    lecturer_id: str
    expected_enrollment: int
    preferred_rooms: tuple[int, ...]
    preferred_times: tuple[tuple[int, int], ...]


@dataclass
class EvaluationResult:
    fitness: float
    hard_conflicts: int
    capacity_violations: int
    availability_violations: int
    daily_overload: int
    distribution_bonus: int
    feasible: bool
    underutilized_rooms: int = 0


@dataclass
class GeneticSolution:
    placements: list[Placement]
    evaluation: EvaluationResult | None
    generations_run: int
    runtime_ms: int

    def as_entries(self) -> list[dict[str, str]]:
        return [placement.as_dict() for placement in self.placements]


class GeneticScheduler:
    """Genetic search over (room, day, slot) for every section; each lecturer is fixed."""

    def __init__(
        self,
        *,
        sections: Sequence[Any],
        rooms: Sequence[Any],
        lecturers: Sequence[Any],
        time_slots: Sequence[Any],
        days: Sequence[str],
        settings: GenerationSettingsBase | None = None,
        availability: Mapping[str, Iterable[Any]] | None = None,
    ) -> None:
        self.settings = settings or GenerationSettingsBase()
        self.random = random.Random(self.settings.random_seed)

        self.days = self._normalize_days(days)
        self.rooms = list(rooms)
        self.time_slots = sorted(time_slots, key=lambda slot: parse_time_to_minutes(slot.start_time))
        if not self.rooms or not self.time_slots or not self.days:
            raise UnsatisfiableInstanceError(
                message="Timetable generation needs at least one room, one time slot and one day",
                details={
                    "rooms": len(self.rooms),
                    "time_slots": len(self.time_slots),
                    "days": len(self.days),
                },
            )

        self.sections = list(sections)
        self.lecturers = self._index_lecturers(lecturers, availability)
        self.requests = self._build_requests()
        self.room_fits = [
            [fits_capacity(room, section) for room in self.rooms] for section in self.sections
        ]
        self.room_underused = [
            [self._underused(room, section) for room in self.rooms] for section in self.sections
        ]
        self.available = [self._availability_table(req) for req in self.requests]
        self._set_feasibility_weights()
        self.eval_cache: dict[tuple[Gene, ...], EvaluationResult] = {}

    @staticmethod
    def _normalize_days(days: Sequence[str]) -> list[str]:
        normalized: list[str] = []
        for day in days:
            value = normalize_day(day)
            if value not in normalized:
                normalized.append(value)
        return normalized

    def _underused(self, room: Any, section: Any) -> bool:
        enrollment = section.expected_enrollment or 0
        return fits_capacity(room, section) and enrollment < room.capacity * self.settings.underutilization_ratio

    @staticmethod
    def _index_lecturers(
        lecturers: Sequence[Any],
        availability: Mapping[str, Iterable[Any]] | None,
    ) -> dict[str, Any]:
        indexed: dict[str, Any] = {str(item.id): item for item in lecturers}
        for lecturer_id, windows in (availability or {}).items():
            existing = indexed.get(str(lecturer_id))
            merged = list(getattr(existing, "availability", None) or []) + list(windows)
            indexed[str(lecturer_id)] = SimpleNamespace(id=str(lecturer_id), availability=merged)
        return indexed

    def _availability_table(self, req: SectionRequest) -> list[list[bool]]:
        lecturer = self.lecturers.get(req.lecturer_id)
        return [
            [is_within_availability(lecturer, day, slot) for slot in self.time_slots]
            for day in self.days
        ]

    def _build_requests(self) -> list[SectionRequest]:
        requests: list[SectionRequest] = []
        for index, section in enumerate(self.sections):
            lecturer = self.lecturers.get(str(section.lecturer_id))
            preferred_rooms = tuple(
                room_index for room_index, room in enumerate(self.rooms) if fits_capacity(room, section)
            )
            preferred_times = tuple(
                (day_index, slot_index)
                for day_index, day in enumerate(self.days)
                for slot_index, slot in enumerate(self.time_slots)
                if is_within_availability(lecturer, day, slot)
            )
            requests.append(
                SectionRequest(
                    index=index,
                    course_id=str(section.id),
                    lecturer_id=str(section.lecturer_id),
                    expected_enrollment=section.expected_enrollment,
                    preferred_rooms=preferred_rooms,
                    preferred_times=preferred_times,
                )
            )
        return requests

    def _set_feasibility_weights(self) -> None:
        # Every soft term is bounded by the section count, so a hard/capacity weight above the
        # largest possible soft swing makes any feasible schedule outrank any infeasible one.
        weights = self.settings.objective_weights
        section_count = max(1, len(self.sections))
        soft_ceiling = (weights.daily_overload + weights.distribution + weights.underutilization) * section_count
        if not self.settings.strict_availability:
            soft_ceiling += weights.availability * section_count
        floor = soft_ceiling + 1
        self.hard_weight = max(weights.hard_conflict, floor)
        self.capacity_weight = max(weights.capacity, floor)
        if self.settings.strict_availability:
            self.availability_weight = max(weights.availability, floor)
        else:
            self.availability_weight = weights.availability

    def _random_gene(self, req: SectionRequest, *, biased: bool = True) -> Gene:
        use_bias = biased and self.random.random() < self.settings.initial_bias
        if use_bias and req.preferred_rooms:
            room_index = self.random.choice(req.preferred_rooms)
        else:
            room_index = self.random.randrange(len(self.rooms))
        if use_bias and req.preferred_times:
            day_index, slot_index = self.random.choice(req.preferred_times)
        else:
            day_index = self.random.randrange(len(self.days))
            slot_index = self.random.randrange(len(self.time_slots))
        return (room_index, day_index, slot_index)

    def _random_individual(self) -> list[Gene]:
        return [self._random_gene(req) for req in self.requests]

    def _constructive_individual(self, *, randomized: bool) -> list[Gene]:
        genes: list[Gene | None] = [None] * len(self.requests)
        room_occ: set[tuple[int, int, int]] = set()
        lecturer_occ: set[tuple[str, int, int]] = set()

        # Tightest sections first: fewest acceptable times, then largest enrollment.
        order = sorted(
            self.requests,
            key=lambda req: (len(req.preferred_times) or 10**6, -req.expected_enrollment, req.index),
        )
        for req in order:
            rooms = list(req.preferred_rooms) or list(range(len(self.rooms)))
            times = list(req.preferred_times) or [
                (day_index, slot_index)
                for day_index in range(len(self.days))
                for slot_index in range(len(self.time_slots))
            ]
            if randomized:
                self.random.shuffle(rooms)
                self.random.shuffle(times)
            else:
                rooms.sort(key=lambda room_index: self.rooms[room_index].capacity)
            chosen: Gene | None = None
            for day_index, slot_index in times:
                if (req.lecturer_id, day_index, slot_index) in lecturer_occ:
                    continue
                room_index = next(
                    (item for item in rooms if (item, day_index, slot_index) not in room_occ),
                    None,
                )
                if room_index is not None:
                    chosen = (room_index, day_index, slot_index)
                    break
            if chosen is None:
                chosen = self._random_gene(req)
            genes[req.index] = chosen
            room_occ.add(chosen)
            lecturer_occ.add((req.lecturer_id, chosen[1], chosen[2]))
        return [gene for gene in genes if gene is not None]

    def _build_initial_population(self) -> list[list[Gene]]:
        population: list[list[Gene]] = []
        seen: set[tuple[Gene, ...]] = set()

        def add_unique(candidate: list[Gene]) -> None:
            key = tuple(candidate)
            if key in seen:
                return
            seen.add(key)
            population.append(candidate)

        add_unique(self._constructive_individual(randomized=False))

        smart_seed_count = max(2, self.settings.population_size // 4)
        attempts = 0
        while len(population) < smart_seed_count and attempts < smart_seed_count * 2:
            attempts += 1
            add_unique(self._constructive_individual(randomized=True))

        while len(population) < self.settings.population_size:
            before = len(population)
            add_unique(self._random_individual())
            if len(population) == before:
                # Small search spaces saturate quickly; duplicates are acceptable there.
                population.append(self._random_individual())

        return population[: self.settings.population_size]

    def _decode(self, genes: Sequence[Gene]) -> list[Placement]:
        placements: list[Placement] = []
        for req, (room_index, day_index, slot_index) in zip(self.requests, genes):
            placements.append(
                Placement(
                    course_id=req.course_id,
                    room_id=str(self.rooms[room_index].id),
                    lecturer_id=req.lecturer_id,
                    day=self.days[day_index],
                    time_slot_id=str(self.time_slots[slot_index].id),
                )
            )
        return placements

    def _evaluate(self, genes: list[Gene]) -> EvaluationResult:
        key = tuple(genes)
        cached = self.eval_cache.get(key)
        if cached is not None:
            return cached

        weights = self.settings.objective_weights
        hard = hard_conflict_count(self._decode(genes))
        capacity = 0
        availability = 0
        underused = 0
        daily_load: dict[tuple[str, int], int] = defaultdict(int)
        lecturer_days: dict[str, set[int]] = defaultdict(set)

        for req, (room_index, day_index, slot_index) in zip(self.requests, genes):
            if not self.room_fits[req.index][room_index]:
                capacity += 1
            if not self.available[req.index][day_index][slot_index]:
                availability += 1
            if self.room_underused[req.index][room_index]:
                underused += 1
            daily_load[(req.lecturer_id, day_index)] += 1
            lecturer_days[req.lecturer_id].add(day_index)

        limit = self.settings.max_lecturer_sessions_per_day
        overload = sum(count - limit for count in daily_load.values() if count > limit)
        distribution = sum(len(days) for days in lecturer_days.values())

        penalty = (
            self.hard_weight * hard
            + self.capacity_weight * capacity
            + self.availability_weight * availability
            + weights.daily_overload * overload
            + weights.underutilization * underused
        )
        feasible = hard == 0 and capacity == 0
        if self.settings.strict_availability:
            feasible = feasible and availability == 0
        result = EvaluationResult(
            fitness=float(weights.distribution * distribution - penalty),
            hard_conflicts=hard,
            capacity_violations=capacity,
            availability_violations=availability,
            daily_overload=overload,
            distribution_bonus=distribution,
            feasible=feasible,
            underutilized_rooms=underused,
        )
        self.eval_cache[key] = result
        return result

    def _evaluate_population(
        self,
        population: list[list[Gene]],
        executor: ThreadPoolExecutor | None,
    ) -> list[EvaluationResult]:
        # Fitness is pure, so sharding the population changes nothing but wall time.
        if executor is None:
            return [self._evaluate(item) for item in population]
        return list(executor.map(self._evaluate, population))

    def _select(self, population: list[list[Gene]], evaluations: list[EvaluationResult]) -> list[Gene]:
        size = min(self.settings.tournament_size, len(population))
        contenders = self.random.sample(range(len(population)), size)
        best_index = max(contenders, key=lambda idx: evaluations[idx].fitness)
        return population[best_index]

    def _crossover(self, parent_a: list[Gene], parent_b: list[Gene]) -> list[Gene]:
        length = len(parent_a)
        if length < 2:
            return list(parent_a)
        first, second = sorted(self.random.sample(range(length + 1), 2))
        return parent_a[:first] + parent_b[first:second] + parent_a[second:]

    def _mutate(self, genes: list[Gene], *, mutation_rate: float | None = None) -> list[Gene]:
        mutated = list(genes)
        rate = mutation_rate if mutation_rate is not None else self.settings.mutation_rate
        for index, req in enumerate(self.requests):
            if self.random.random() < rate:
                mutated[index] = self._random_gene(req, biased=self.random.random() < 0.5)
        return mutated

    def _adaptive_mutation_rate(self, stagnant_generations: int) -> float:
        base = self.settings.mutation_rate
        limit = self.settings.stagnation_limit
        if stagnant_generations >= limit // 2 and not self._best_is_feasible:
            return min(0.35, max(base, base * 2.0))
        if stagnant_generations >= limit // 4 and not self._best_is_feasible:
            return min(0.25, max(base, base * 1.4))
        return base

    def run(self) -> GeneticSolution:
        start = perf_counter()
        if not self.requests:
            return GeneticSolution(placements=[], evaluation=None, generations_run=0, runtime_ms=0)

        logger.info(
            "Starting genetic optimisation: %d sections, %d rooms, %d days x %d slots "
            "(population=%d, generations=%d, mutation_rate=%.3f, seed=%s)",
            len(self.requests),
            len(self.rooms),
            len(self.days),
            len(self.time_slots),
            self.settings.population_size,
            self.settings.generations,
            self.settings.mutation_rate,
            self.settings.random_seed,
        )

        population = self._build_initial_population()
        best_genes: list[Gene] = population[0]
        best_eval: EvaluationResult | None = None
        self._best_is_feasible = False
        stagnant = 0
        generation = 0

        executor = (
            ThreadPoolExecutor(max_workers=self.settings.evaluation_workers)
            if self.settings.evaluation_workers > 1
            else None
        )
        try:
            for generation in range(1, self.settings.generations + 1):
                evaluations = self._evaluate_population(population, executor)
                ranked_indices = sorted(range(len(population)), key=lambda idx: evaluations[idx].fitness, reverse=True)
                ranked_population = [population[idx] for idx in ranked_indices]
                ranked_evaluations = [evaluations[idx] for idx in ranked_indices]

                generation_best = ranked_evaluations[0]
                if best_eval is None or generation_best.fitness > best_eval.fitness:
                    best_eval = generation_best
                    best_genes = ranked_population[0]
                    self._best_is_feasible = generation_best.feasible
                    stagnant = 0
                else:
                    stagnant += 1

                logger.debug(
                    "Generation %d: best fitness %.1f (hard=%d, capacity=%d)",
                    generation,
                    best_eval.fitness,
                    best_eval.hard_conflicts,
                    best_eval.capacity_violations,
                )

                if best_eval.feasible and stagnant >= self.settings.stagnation_limit:
                    logger.info("Early stopping at generation %d: no improvement for %d generations", generation, stagnant)
                    break

                mutation_rate = self._adaptive_mutation_rate(stagnant)
                next_population = [list(item) for item in ranked_population[: self.settings.elite_count]]
                while len(next_population) < self.settings.population_size:
                    parent_a = self._select(ranked_population, ranked_evaluations)
                    parent_b = self._select(ranked_population, ranked_evaluations)
                    if self.random.random() < self.settings.crossover_rate:
                        child = self._crossover(parent_a, parent_b)
                    else:
                        child = list(parent_a)
                    next_population.append(self._mutate(child, mutation_rate=mutation_rate))
                population = next_population
            else:
                # The last generation's offspring have not been scored yet.
                for genes, evaluation in zip(population, self._evaluate_population(population, executor)):
                    if best_eval is None or evaluation.fitness > best_eval.fitness:
                        best_eval = evaluation
                        best_genes = genes
        finally:
            if executor is not None:
                executor.shutdown(wait=True)

        runtime_ms = int((perf_counter() - start) * 1000)
        logger.info(
            "Genetic optimisation finished after %d generation(s) in %d ms: fitness=%.1f hard=%d capacity=%d availability=%d",
            generation,
            runtime_ms,
            best_eval.fitness,
            best_eval.hard_conflicts,
            best_eval.capacity_violations,
            best_eval.availability_violations,
        )
        return GeneticSolution(
            placements=self._decode(best_genes),
            evaluation=best_eval,
            generations_run=generation,
            runtime_ms=runtime_ms,
        )

    def solve(self) -> list[dict[str, str]]:
        return self.run().as_entries()


def solve(
    sections: Sequence[Any],
    rooms: Sequence[Any],
    lecturers: Sequence[Any],
    slots: Sequence[Any],
    days: Sequence[str],
    availability: Mapping[str, Iterable[Any]] | None = None,
    *,
    settings: GenerationSettingsBase | None = None,
) -> list[dict[str, str]]:
    """Assign every section to one (room, day, slot); returns the best schedule found.

    An empty section list yields an empty schedule. Missing rooms, slots or days raise
    ``UnsatisfiableInstanceError``. A schedule with remaining conflicts is still returned.
    """
    scheduler = GeneticScheduler(
        sections=sections,
        rooms=rooms,
        lecturers=lecturers,
        time_slots=slots,
        days=days,
        settings=settings,
        availability=availability,
    )
    return scheduler.solve()
