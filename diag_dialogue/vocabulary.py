"""Keyword rule tables.

One ordered table per concern.  All tables are evaluated through
:mod:`diag_dialogue.matcher`; order matters wherever two entries could
match the same text (first wins).
"""

from __future__ import annotations

from typing import Dict, Tuple

from diag_dialogue.matcher import PatternRule, rule

# ---------------------------------------------------------------------------
# Trouble codes
# ---------------------------------------------------------------------------

CODE_PATTERN = r"\b([PBUC]\d{4})\b"

CODE_FAMILIES: Dict[str, str] = {
    "P": "powertrain",
    "B": "body",
    "U": "network",
    "C": "chassis",
}

# ---------------------------------------------------------------------------
# Session activation
# ---------------------------------------------------------------------------

SYMPTOM_KEYWORDS: Tuple[PatternRule, ...] = (
    rule(r"\bcheck engine\b", "check_engine"),
    rule(r"\bdiagnos(e|is|ing)\b", "diagnose"),
    rule(r"\bmisfir(e|es|ing)\b", "misfire"),
    rule(r"\brough idle\b", "rough_idle"),
    rule(r"\b(no start|won'?t start|will not start|no crank)\b", "no_start"),
    rule(r"\bstall(s|ing)?\b", "stall"),
    rule(r"\boverheat(s|ing)?\b", "overheat"),
    rule(r"\b(noise|knock|grind|squeal)\b", "noise"),
    rule(r"\b(lean|rich)\b", "fuel_trim"),
    rule(r"\b(evap|leak)\b", "leak"),
    rule(r"\b(abs|traction|brake)\b", "brakes"),
    rule(r"\b(slip|slipping|harsh shift)\b", "transmission"),
    rule(r"\b(battery light|alternator|not charging)\b", "charging"),
    rule(r"\b(wobble|vibration|clunk)\b", "chassis"),
    rule(r"\b(lost communication|can bus|network)\b", "network"),
)

# ---------------------------------------------------------------------------
# Domain detection (keyword clusters, fixed priority)
# ---------------------------------------------------------------------------

DOMAIN_KEYWORDS: Tuple[PatternRule, ...] = (
    rule(r"\b(srs|airbag|clock spring)\b", "srs_airbag"),
    rule(r"\b(hybrid|ev|high voltage|orange cable)\b", "hybrid_ev"),
    rule(r"\b(evap|p04[45]\d|purge|vent valve|vent solenoid|large leak|small leak|gas cap)\b", "evap"),
    rule(r"\b(overheat|overheating|running hot|temp gauge|coolant temp|fan not working)\b", "cooling"),
    rule(
        r"\b(no crank|won'?t crank|clicks|battery light|alternator|no charge|not charging"
        r"|starter|no start|won'?t start|will not start|cranks but)\b",
        "starting_charging",
    ),
    rule(r"\b(abs|traction|stabilitrak|esc|brake light|brake pedal|soft pedal|hard pedal)\b", "brakes_abs"),
    rule(r"\b(transmission|slipping|harsh shift|delayed engagement|no movement)\b", "transmission"),
    rule(r"(\bno heat\b|\bno a/?c\b|\bac not cold\b|\bblower\b|\bhvac\b|\bblend door\b)", "hvac"),
    rule(r"\b(def|scr|dpf|regen|soot|reductant|p2[046]\d\d|nox|doser|egr)\b", "diesel_emissions"),
    rule(
        r"\b(death wobble|wobble|clunk|wander|loose steering|vibration|track bar|tie rod|ball joint)\b",
        "steering_suspension",
    ),
    rule(r"\b(tpms|tire pressure monitor|low tire)\b", "tpms"),
    rule(r"\b(adas|lane keep|adaptive cruise|front camera|radar|collision warning)\b", "adas"),
)

DRIVABILITY_KEYWORDS: Tuple[PatternRule, ...] = (
    rule(r"\b(misfire|misfiring|rough idle|stall|stalls|runs rough|smoke|lean|rich|check engine|hesitat\w*)\b", "engine_drivability"),
)

# ---------------------------------------------------------------------------
# Fact extraction (text side; code-range rules live in facts.py)
# ---------------------------------------------------------------------------

MISFIRE_MENTION: Tuple[PatternRule, ...] = (
    rule(r"\bmisfir(e|es|ing)\b", "misfire"),
    rule(r"\b(rough idle|shaking|stumbl\w*)\b", "misfire"),
)

MISFIRE_TYPE: Tuple[PatternRule, ...] = (
    rule(r"\b(random|multiple|multi|several|many|more than one|all over)\b", "multiple"),
    rule(r"\b(single|one cylinder|just one|only one)\b", "single"),
    rule(r"\b(?:cyl(?:inder)?|#)\s*\d\b", "single"),
)

CYLINDER_NUMBER: Tuple[PatternRule, ...] = (
    rule(r"\b(?:cyl(?:inder)?\.?|#)\s*([1-8])\b", "{1}"),
)

LEAN_BANKS: Tuple[PatternRule, ...] = (
    rule(r"\blean\b.*\bboth banks\b|\bboth banks\b.*\blean\b", "both"),
    rule(r"\blean\b.*\bbank ?1\b|\bbank ?1\b.*\blean\b", "bank1"),
    rule(r"\blean\b.*\bbank ?2\b|\bbank ?2\b.*\blean\b", "bank2"),
)

EVAP_LEAK_TEXT: Tuple[PatternRule, ...] = (
    rule(r"\blarge leak\b", "large_leak"),
    rule(r"\bsmall leak\b", "small_leak"),
    rule(r"\b(purge|vent) (valve|solenoid|performance|flow)\b", "purge_vent_performance"),
)

NETWORK_SCOPE_TEXT: Tuple[PatternRule, ...] = (
    rule(r"\b(single module|one module|only one module)\b", "single"),
    rule(r"\b(multiple modules|several modules|many modules|all modules|modules offline)\b", "multiple"),
)

CHARGING_HINT: Tuple[PatternRule, ...] = (
    rule(r"\b(battery light|charging system|alternator|overcharging|no charge|not charging)\b", "charging"),
)

NO_START_HINT: Tuple[PatternRule, ...] = (
    rule(r"\b(no start|won'?t start|will not start|cranks but|no crank|won'?t crank|clicks|starter)\b", "no_start"),
)

COOLING_HINT: Tuple[PatternRule, ...] = (
    rule(r"\b(overheat|overheating|running hot|temp gauge|coolant temp)\b", "overheat"),
)

BRAKES_HINT: Tuple[PatternRule, ...] = (
    rule(r"\b(abs|traction|stabilitrak|esc|brake light|brakes?|brake pedal)\b", "brakes_abs"),
)

TRANSMISSION_HINT: Tuple[PatternRule, ...] = (
    rule(r"\b(transmission|slip|slipping|harsh shift|delayed engagement|no movement)\b", "transmission"),
)

# ---------------------------------------------------------------------------
# Answer vocabularies
# ---------------------------------------------------------------------------

YES_NO: Tuple[PatternRule, ...] = (
    # Negated phrases first: "not done" must not read as "done".
    rule(r"\b(not yet|not done|didn'?t|did not|haven'?t|havent|hasn'?t|has not|nope|nah|negative)\b", "no"),
    rule(r"\b(yes|yep|yeah|yup|done|checked|verified|confirmed|ok|okay|correct|affirmative|acknowledged|did it)\b", "yes"),
    rule(r"\b(no|none)\b", "no"),
)

OCCURRENCE: Tuple[PatternRule, ...] = (
    rule(r"\b(all the time|always|constant|constantly)\b", "all_the_time"),
    rule(r"\bidle\b", "idle"),
    rule(r"\b(cruise|cruising|steady|steady speed)\b", "cruise"),
    rule(r"\b(load|under load|accel\w*|driving|on throttle|wot|uphill|towing)\b", "under_load"),
    rule(r"\b(cold|cold start|startup|first start)\b", "cold_start"),
    rule(r"\b(hot|heat soaked|after warm|warm)\b", "hot"),
)

LOAD_BOTH: Tuple[PatternRule, ...] = (
    rule(r"\b(both|either|all the time|always|everywhere|no difference|same)\b", "both"),
)

LOAD_SIDE: Tuple[PatternRule, ...] = (
    rule(r"\bidle\b", "idle"),
    rule(r"\b(load|under load|accel\w*|throttle|wot|driving|uphill|towing)\b", "load"),
)

SCOPE: Tuple[PatternRule, ...] = (
    rule(r"\b(multiple|many|several|all modules|more than one|multi)\b", "multiple"),
    rule(r"\b(single|one module|only one|just one|one)\b", "single"),
)

TEMP_BAND: Tuple[PatternRule, ...] = (
    rule(r"\b(gauge only|no boil|no coolant loss)\b", "gauge_only"),
    rule(r"\b(immediately|right away|quickly|after startup)\b", "immediate"),
    rule(r"\b(highway|load|hill|towing)\b", "highway_load"),
    rule(r"\b(idle|stopped|idling)\b", "idle"),
    rule(r"\bdriving\b", "driving"),
)

CRANK_TYPE: Tuple[PatternRule, ...] = (
    rule(r"\b(no[ -]?crank|doesn'?t crank|does not crank|won'?t crank|just clicks|clicks)\b", "no_crank"),
    rule(r"\b(cranks?|turns over|crank[ -]?no[ -]?start)\b", "crank_no_start"),
)

BRAKE_COMPLAINT: Tuple[PatternRule, ...] = (
    rule(r"\b(abs|traction|stabilitrak|esc)\b", "abs_light"),
    rule(r"\bsoft\b", "soft_pedal"),
    rule(r"\bhard\b", "hard_pedal"),
    rule(r"\bpull(s|ing)?\b", "pull"),
    rule(r"\b(noise|grind|grinding|squeal|squealing)\b", "noise"),
)

TRANS_COMPLAINT: Tuple[PatternRule, ...] = (
    rule(r"\b(no movement|won'?t move|will not move)\b", "no_movement"),
    rule(r"\b(slip|slips|slipping)\b", "slip"),
    rule(r"\b(harsh|bang|bangs|slams)\b", "harsh_shift"),
    rule(r"\bdelayed\b", "delayed_engagement"),
)

# "Can't reach it" style answers that trigger tier escalation.
INACCESSIBLE: Tuple[PatternRule, ...] = (
    rule(r"\b(can'?t|cannot|can not|unable to|no way to)\s+(get to|reach|access|see|get at|get my hands on)\b", "inaccessible"),
    rule(r"\b(hard|difficult|impossible|tough)\s+to\s+(get to|reach|access|get at)\b", "inaccessible"),
    rule(r"\b(have|need|needs|would need|requires?|got)\s+to\s+(remove|pull|tear|drop|take off)\b", "inaccessible"),
    rule(r"\b(requires?|means)\s+(pulling|removing|dropping)\b", "inaccessible"),
    rule(r"\b(not|isn'?t|is not)\s+accessible\b", "inaccessible"),
    rule(r"\b(intake|tank)\s+(has to|must|needs to)\s+come (off|out)\b", "inaccessible"),
    rule(r"\b(tear ?down|buried)\b", "inaccessible"),
)
