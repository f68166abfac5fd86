"""Deterministic voice assignment for debate participants.

Each participant gets a voice from a gender-matched pool. The perceived
gender is a keyword heuristic over name and description; a tie (including
no hits at all) falls back to the male pool. The starting slot comes from a
stable string hash so the same line-up always gets the same voices, and
collisions are resolved by scanning forward through the pool.
"""

from collections.abc import Sequence

from arena.models import Participant

MALE_VOICES: tuple[str, ...] = (
    "CwhRBWXzGAHq8TQ4Fs17",  # Roger
    "IKne3meq5aSn9XLyUdCD",  # Charlie
    "JBFqnCBsd6RMkjVDRZzb",  # George
    "N2lVS1w4EtoT3dr4eOWO",  # Callum
    "TX3LPaxmHKxFdv7VOQHJ",  # Liam
    "cjVigY5qzO86Huf0OWal",  # Eric
    "iP95p4xoKVk53GoZ742B",  # Chris
    "nPczCjzI2devNBz1zQrb",  # Brian
    "onwK4e9ZLuTAKqWW03F9",  # Daniel
)

FEMALE_VOICES: tuple[str, ...] = (
    "EXAVITQu4vr4xnSDxMaL",  # Sarah
    "FGY2WhTYpPnrIDTdsKH5",  # Laura
    "Xb7hH8MSUJpSbSDYk0k2",  # Alice
    "XrExE9yKIg1WjnnlVkGX",  # Matilda
    "cgSgspJ2msm6clMCkdW9",  # Jessica
    "pFZP5JQG7iQjIQuC4Bku",  # Lily
)

FEMALE_INDICATORS: tuple[str, ...] = (
    "she", "her", "woman", "female", "girl", "lady", "queen", "princess", "mother", "mom",
    "grandmother", "sister", "daughter", "aunt", "niece", "goddess", "empress", "baroness",
    "duchess", "countess", "miss", "mrs", "ms",
    "mary", "sarah", "jessica", "jennifer", "amanda", "elizabeth", "emily", "emma",
    "olivia", "sophia", "isabella", "mia", "charlotte", "amelia", "harper", "evelyn",
    "abigail", "ella", "scarlett", "grace", "lily", "aria", "zoey", "riley",
    "laura", "alice", "matilda", "victoria", "catherine", "margaret", "diana",
    "cleopatra", "marie", "rosa", "frida", "oprah", "beyonce", "taylor",
    "hillary", "kamala", "angela", "indira", "malala",
)

MALE_INDICATORS: tuple[str, ...] = (
    "he", "him", "man", "male", "boy", "king", "prince", "father", "dad",
    "grandfather", "brother", "son", "uncle", "nephew", "god", "emperor", "baron",
    "duke", "count", "sir", "mr", "lord",
    "james", "john", "robert", "michael", "william", "david", "richard", "joseph",
    "thomas", "charles", "daniel", "matthew", "andrew", "george", "roger", "brian",
    "chris", "eric", "liam", "noah", "oliver", "benjamin", "lucas", "henry",
    "alexander", "jack", "donald", "barack", "elon", "mark", "jeff", "bill",
    "steve", "albert", "isaac", "nikola", "aristotle", "plato", "socrates",
    "gandhi", "napoleon", "lincoln", "churchill", "einstein", "tesla", "marx",
)


def detect_gender(name: str, description: str) -> str:
    """Return "male", "female" or "unknown" from plain substring hits."""
    text = f"{name} {description}".lower()
    female_score = sum(1 for word in FEMALE_INDICATORS if word in text)
    male_score = sum(1 for word in MALE_INDICATORS if word in text)
    if female_score > male_score:
        return "female"
    if male_score > female_score:
        return "male"
    return "unknown"


def stable_hash(text: str) -> int:
    """32-bit rolling hash (h * 31 + unit) over UTF-16 code units, made non-negative."""
    encoded = text.encode("utf-16-le")
    h = 0
    for i in range(0, len(encoded), 2):
        unit = encoded[i] | (encoded[i + 1] << 8)
        h = (h * 31 + unit) & 0xFFFFFFFF
    if h >= 0x80000000:
        h -= 0x100000000
    return abs(h)


def voice_pool(participant: Participant) -> tuple[str, ...]:
    if detect_gender(participant.name, participant.description) == "female":
        return FEMALE_VOICES
    return MALE_VOICES


def assign_voices(participants: Sequence[Participant]) -> list[str]:
    """Pick one voice id per participant, same order as the input.

    Ids are distinct while the relevant pool has room; once a pool is used
    up the participant falls back to its hash slot.
    """
    used: set[str] = set()
    voices: list[str] = []
    for participant in participants:
        pool = voice_pool(participant)
        base = stable_hash(participant.name + participant.description) % len(pool)
        chosen = pool[base]
        for offset in range(len(pool)):
            candidate = pool[(base + offset) % len(pool)]
            if candidate not in used:
                chosen = candidate
                break
        used.add(chosen)
        voices.append(chosen)
    return voices
