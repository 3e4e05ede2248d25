"""Class II cavity preparation rubric.

The catalog below is the single definition of the scoring rubric. The model
instruction text is rendered from it, so editing a criterion here changes both
the prompt and the validation limits.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Mapping

CRITICAL_CRITERION_ID = 10

# Out-of-band penalty codes carried by the critical-errors criterion.
PENALTY_NONE = 0
PENALTY_NO_STEP_PREPARATION = -30
PENALTY_INVALID_SUBMISSION = -100


@dataclass(frozen=True)
class Criterion:
    """A single rubric dimension with its point anchors."""

    id: int
    name: str
    description: str
    max_points: int
    scoring_options: Mapping[int, str] = field(default_factory=dict, hash=False)
    # Short English rendering used in the model instruction.
    instruction_label: str = ""
    # Photograph the criterion is best judged from; empty means both.
    view: str = ""

    def __post_init__(self) -> None:
        object.__setattr__(self, "scoring_options", MappingProxyType(dict(self.scoring_options)))

    @property
    def is_critical(self) -> bool:
        return self.id == CRITICAL_CRITERION_ID

    @property
    def anchor_points(self) -> tuple[int, ...]:
        return tuple(sorted(self.scoring_options, reverse=True))


_RUBRIC: tuple[Criterion, ...] = (
    Criterion(
        id=1,
        name="Outline Form",
        description="Kavitenin sınıf II anatomisine uyumu (oklüzal ve proksimal sınırlar)",
        max_points=12,
        scoring_options={12: "İdeal", 6: "Hafif sapma (1 mm içinde)", 0: "Ciddi hata (>1.5 mm fazla kesim)"},
        instruction_label="Outline Form",
        view="occlusal",
    ),
    Criterion(
        id=2,
        name="Retansiyon Formu",
        description="Kavite duvarlarında uygun undercut/direkt konverjans (6-12°)",
        max_points=12,
        scoring_options={12: "Mükemmel açı", 6: "Kısmen uygun", 0: "Retansiyon yok (düz duvar)"},
        instruction_label="Retention Form",
        view="occlusal",
    ),
    Criterion(
        id=3,
        name="Yüzey Pürüzsüzlüğü",
        description="Duvar/dip yüzeylerinde çizik, pürüz veya düzensizlik olmaması.",
        max_points=12,
        scoring_options={12: "Tamamen pürüzsüz", 6: "Hafif çizikler", 0: "Belirgin düzensizlik"},
        instruction_label="Surface Smoothness",
    ),
    Criterion(
        id=4,
        name="Derinlik Kontrolü",
        description="Oklüzal kısım derinliği (1.5-2 mm) ve pulpa koruması.",
        max_points=12,
        scoring_options={12: "1.8 mm ±0.2", 6: "1.3 mm veya 2.3 mm", 0: "Pulpa maruziyeti/aşırı sığ"},
        instruction_label="Depth Control",
        view="occlusal",
    ),
    Criterion(
        id=5,
        name="Proksimal Kutu Genişliği",
        description="Bukkalingual genişlik (2-2.5 mm).",
        max_points=12,
        scoring_options={12: "İdeal genişlik", 6: "2 mm - 2.5 mm", 0: ">2.5 mm"},
        instruction_label="Proximal Box Width",
        view="proximal",
    ),
    Criterion(
        id=6,
        name="Gingival Taban Derinliği",
        description="Servikal sınırdan itibaren gingival taban derinliği (0.5-1 mm).",
        max_points=10,
        scoring_options={10: "0.75 mm ±0.25", 5: "0.3 mm – 0.5 mm", 0: "0.3’ten az veya 1mm’den fazla"},
        instruction_label="Gingival Floor Depth",
        view="proximal",
    ),
    Criterion(
        id=7,
        name="Aksiyal Duvar Hizası",
        description="Proksimal kutuda aksiyal duvarın dikey/düzgün olması.",
        max_points=10,
        scoring_options={10: "Mükemmel hiza", 5: "Hafif eğim", 0: "Eğim >20° veya kırık"},
        instruction_label="Axial Wall Alignment",
        view="proximal",
    ),
    Criterion(
        id=8,
        name="Marginal Ridge Kalınlığı",
        description="Marginal ridge’in minimum 1.5 mm kalınlıkta korunması.",
        max_points=10,
        scoring_options={10: "≥1.5 mm", 5: "1.0-1.4 mm", 0: "<1.0 mm veya kırık"},
        instruction_label="Marginal Ridge Thickness",
    ),
    Criterion(
        id=9,
        name="Kırlangıç Kuyruğu Kavitesi",
        description="Kuyruğun boynu ve genişliği arasındaki oranın 1/3 olması.",
        max_points=10,
        scoring_options={10: "1/3 oranın sağlanması", 5: "1/2 oranın sağlanması", 0: "1/1 ya da >1 oranın sağlanması"},
        instruction_label="Dovetail Cavity",
        view="occlusal",
    ),
    Criterion(
        id=CRITICAL_CRITERION_ID,
        name="Kritik Hatalar",
        description="Pulpa perforasyonu, yanlış kavite preparasyonu, basamak hazırlığı yapılmaması.",
        max_points=0,
        scoring_options={
            PENALTY_NONE: "Yok",
            PENALTY_NO_STEP_PREPARATION: "Basamak hazırlığı yapılmaması",
            PENALTY_INVALID_SUBMISSION: "Geçersiz ödev: Pulpa perforasyonu/ Yanlış kavite preparasyonu",
        },
        instruction_label="Critical Errors",
    ),
)


def get_criteria() -> tuple[Criterion, ...]:
    """Return the rubric criteria ordered by id."""

    return _RUBRIC


def get_criterion(criterion_id: int) -> Criterion:
    for criterion in _RUBRIC:
        if criterion.id == criterion_id:
            return criterion
    raise KeyError(f"Unknown criterion id {criterion_id}")


def scored_criteria(criteria: tuple[Criterion, ...] | None = None) -> tuple[Criterion, ...]:
    return tuple(c for c in (criteria or _RUBRIC) if not c.is_critical)


def critical_criterion(criteria: tuple[Criterion, ...] | None = None) -> Criterion:
    for criterion in criteria or _RUBRIC:
        if criterion.is_critical:
            return criterion
    raise KeyError("Rubric has no critical-errors criterion")


def max_total(criteria: tuple[Criterion, ...] | None = None) -> int:
    return sum(c.max_points for c in scored_criteria(criteria))


def render_rubric_instructions(criteria: tuple[Criterion, ...] | None = None) -> str:
    """Render the numbered rubric block embedded in the model instruction."""

    lines: list[str] = []
    for criterion in criteria or _RUBRIC:
        anchors = ", ".join(f"{criterion.scoring_options[points]} ({points})" for points in criterion.anchor_points)
        label = criterion.instruction_label or criterion.name
        if criterion.is_critical:
            lines.append(
                f'{criterion.id}. {label} [name: "{criterion.name}"]: {criterion.description} '
                f"Allowed score codes: {anchors}."
            )
            continue
        lines.append(
            f'{criterion.id}. {label} [name: "{criterion.name}"] (Max {criterion.max_points}): '
            f"{criterion.description} Anchors: {anchors}."
        )
    return "\n".join(lines)
