"""TRBS hazard catalogue.

Hazards are referenced as ``"<categoryId>-<hazardIndex>"`` with a 1-based
category id and a 0-based index into that category's hazard list.
"""

import re
from dataclasses import dataclass
from typing import Iterable, Optional

HAZARD_ID_PATTERN = re.compile(r"^(\d+)-(\d+)$")

UNKNOWN_CATEGORY = "Unbekannte Kategorie"
UNKNOWN_HAZARD = "Unbekannte Gefährdung"


@dataclass(frozen=True)
class HazardCategory:
    id: int
    name: str
    hazards: tuple[str, ...]


@dataclass(frozen=True)
class ResolvedHazard:
    hazard_id: str
    category_id: Optional[int]
    hazard_index: Optional[int]
    category: str
    hazard: str
    known: bool

    @property
    def label(self) -> str:
        return f"{self.category}: {self.hazard}"


CATEGORIES: tuple[HazardCategory, ...] = (
    HazardCategory(
        1,
        "Mechanische Gefährdungen",
        (
            "Quetschung durch bewegte Teile",
            "Schneiden an scharfen Kanten",
            "Stoß durch herunterfallende Gegenstände",
            "Sturz durch ungesicherte Öffnungen",
        ),
    ),
    HazardCategory(
        2,
        "Elektrische Gefährdungen",
        (
            "Stromschlag durch defekte Geräte",
            "Lichtbogen bei Schalthandlungen",
            "Statische Entladung",
            "Induktive Kopplung",
        ),
    ),
    HazardCategory(
        3,
        "Gefahrstoffe",
        (
            "Hautkontakt mit Gefahrstoffen",
            "Einatmen von Gefahrstoffen",
            "Verschlucken von Gefahrstoffen",
            "Hautkontakt mit unter Druck stehenden Flüssigkeiten",
        ),
    ),
    HazardCategory(
        4,
        "Biologische Arbeitsstoffe",
        ("Infektionsgefährdung", "sensibilisierende Wirkung", "toxische Wirkung"),
    ),
    HazardCategory(
        5,
        "Brand- und Explosionsgefährdungen",
        ("brennbare Feststoffe, Flüssigkeiten, Gase", "explosionsfähige Atmosphäre", "Explosivstoffe"),
    ),
    HazardCategory(
        6,
        "Thermische Gefährdungen",
        ("heiße Medien/Oberflächen", "kalte Medien/Oberflächen", "Brand, Explosion"),
    ),
    HazardCategory(
        7,
        "Gefährdungen durch spezielle physikalische Einwirkungen",
        (
            "Lärm",
            "Ultraschall, Infraschall",
            "Ganzkörpervibrationen",
            "Hand-Arm-Vibrationen",
            "optische Strahlung",
            "ionisierende Strahlung",
            "elektromagnetische Felder",
            "Unter- oder Überdruck",
        ),
    ),
    HazardCategory(
        8,
        "Gefährdungen durch Arbeitsumgebungsbedingungen",
        (
            "Klima (Hitze, Kälte)",
            "unzureichende Beleuchtung",
            "Lärm",
            "unzureichende Verkehrswege",
            "Sturz, Ausgleiten",
            "unzureichende Flucht- und Rettungswege",
        ),
    ),
    HazardCategory(
        9,
        "Physische Belastung/Arbeitsschwere",
        (
            "schwere dynamische Arbeit",
            "einseitige dynamische Arbeit",
            "Haltungsarbeit/Zwangshaltungen",
            "Fortbewegung/ungünstige Körperhaltung",
            "Kombination körperlicher Belastungsfaktoren",
        ),
    ),
    HazardCategory(
        10,
        "Psychische Faktoren",
        (
            "unzureichend gestaltete Arbeitsaufgabe",
            "unzureichend gestaltete Arbeitsorganisation",
            "unzureichend gestaltete soziale Bedingungen",
            "unzureichend gestaltete Arbeitsplatz- und Arbeitsumgebungsfaktoren",
        ),
    ),
    HazardCategory(
        11,
        "Sonstige Gefährdungen",
        (
            "durch Menschen (körperliche Gewalt)",
            "durch Tiere",
            "durch Pflanzen und pflanzliche Produkte",
            "Absturz in/durch Behälter, Becken, Gruben",
        ),
    ),
)

_BY_ID = {category.id: category for category in CATEGORIES}


def make_hazard_id(category_id: int, hazard_index: int) -> str:
    return f"{category_id}-{hazard_index}"


def parse_hazard_id(hazard_id) -> Optional[tuple[int, int]]:
    if not isinstance(hazard_id, str):
        return None
    match = HAZARD_ID_PATTERN.match(hazard_id.strip())
    if not match:
        return None
    return int(match.group(1)), int(match.group(2))


def get_category(category_id: int) -> Optional[HazardCategory]:
    return _BY_ID.get(category_id)


def is_known_hazard(hazard_id) -> bool:
    return resolve_hazard(hazard_id).known


def resolve_hazard(hazard_id) -> ResolvedHazard:
    raw = hazard_id if isinstance(hazard_id, str) else repr(hazard_id)
    parsed = parse_hazard_id(hazard_id)
    if parsed is None:
        return ResolvedHazard(raw, None, None, UNKNOWN_CATEGORY, f"{UNKNOWN_HAZARD} ({raw})", False)

    category_id, hazard_index = parsed
    category = get_category(category_id)
    if category is None:
        return ResolvedHazard(raw, category_id, hazard_index, UNKNOWN_CATEGORY, f"{UNKNOWN_HAZARD} ({raw})", False)
    if hazard_index >= len(category.hazards):
        return ResolvedHazard(raw, category_id, hazard_index, category.name, f"{UNKNOWN_HAZARD} ({raw})", False)
    return ResolvedHazard(raw, category_id, hazard_index, category.name, category.hazards[hazard_index], True)


def resolve_hazards(hazard_ids: Iterable) -> list[ResolvedHazard]:
    return [resolve_hazard(hazard_id) for hazard_id in hazard_ids or []]


def taxonomy_as_dict() -> dict:
    return {
        str(category.id): {
            "name": category.name,
            "hazards": [
                {"id": make_hazard_id(category.id, index), "label": label}
                for index, label in enumerate(category.hazards)
            ],
        }
        for category in CATEGORIES
    }
