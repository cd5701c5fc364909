"""Vehicle-type categories used by the catalog filter, keyed on raw body codes."""

from __future__ import annotations

from typing import Dict, List

VEHICLE_TYPE_BODIES: Dict[str, List[str]] = {
    "auto": [
        "SEDAN 4D", "4DR SPOR", "HATCHBAC", "COUPE", "COUPE 3D", "2DR SPOR",
        "CONVERTI", "ROADSTER", "SPORTS V", "STATION", "CARGO VA", "4DR EXT",
        "3DR EXT", "LIMOUSIN", "SEDAN 2", "UTILITY", "STEP VAN",
    ],
    "moto": ["ROAD/STR", "RACER", "MOTOR SC", "GLIDERS"],
    "dirt_bikes": ["ENDURO", "MOTO CRO"],
    "atv": ["ALL TERR"],
    "pickup": ["CREW PIC", "CLUB CAB", "EXTENDED", "PICKUP", "SPORT PI", "CREW CHA"],
    "bus": ["BUS", "FIRE TRU"],
    "rv": ["MOTORIZE"],
    "trailer": ["TRACTOR", "CONVENTI", "CHASSIS", "CUTAWAY", "TILT CAB", "INCOMPLE", "INCOMP P"],
    "boat": [],
    "jet_ski": [],
    "snowmobile": [],
}

# The bulk of the feed has no body code; those rows count as cars.
NULL_BODY_TYPE = "auto"

VEHICLE_TYPE_LABELS = {
    "auto": {"en": "Auto", "ru": "Авто"},
    "moto": {"en": "Moto", "ru": "Мото"},
    "atv": {"en": "ATV", "ru": "ATV"},
    "dirt_bikes": {"en": "Dirt Bikes", "ru": "Эндуро"},
    "bus": {"en": "Bus", "ru": "Автобусы"},
    "pickup": {"en": "Pickup Trucks", "ru": "Пикапы"},
    "rv": {"en": "RVs", "ru": "Дома на колесах"},
    "trailer": {"en": "Trailers", "ru": "Трейлеры"},
    "boat": {"en": "Boats", "ru": "Лодки"},
    "jet_ski": {"en": "Jet Skis", "ru": "Гидроциклы"},
    "snowmobile": {"en": "Snowmobile", "ru": "Снегоходы"},
}


def body_codes_for(vehicle_type: str) -> List[str]:
    return list(VEHICLE_TYPE_BODIES.get(vehicle_type, []))


def vehicle_type_label(vehicle_type: str, lang: str) -> str:
    return VEHICLE_TYPE_LABELS[vehicle_type][lang]
