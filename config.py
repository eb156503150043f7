"""Engine-wide tuning constants for the creature behavior and combat core."""

import os

# Awareness
DEFAULT_SIGHT_RANGE = 5          # Tiles a wandering creature can see
KEEN_SIGHT_RANGE = 8             # Sight range for creatures flagged "keen"
DEFAULT_HEARING_RANGE = 8        # Tiles within which noise is heard
DEFAULT_ALERT_RADIUS = 3         # Pack alert radius around a creature that turns hostile
AGGRO_ESCAPE_FACTOR = 3          # Hostility drops once target is beyond factor x sight range

# Flee thresholds (fraction of max HP, strict "below")
DEFAULT_FLEE_THRESHOLD = 0.2
COWARDLY_FLEE_THRESHOLD = 0.5
COWARDLY_HURT_THRESHOLD = 0.7    # Cowardly creatures keep their distance below this
WEAK_TARGET_THRESHOLD = 0.2      # Cowardly creatures fight a target below this
INTELLIGENT_RETREAT_THRESHOLD = 0.3
CAUTIOUS_APPROACH_THRESHOLD = 0.3

# Behaviour geometry (Euclidean tiles)
ADJACENT_DISTANCE = 1.5
PACK_RADIUS = 8
PACK_MIN_ALLIES = 2
GUARD_ALERT_RADIUS = 3
GUARD_LEASH = 2
RANGED_MIN_DISTANCE = 2
RANGED_MAX_DISTANCE = 6
DEFENSIVE_MAX_DISTANCE = 4
WANDER_TURN_CHANCE = 0.3         # Chance to pick a new wander direction each turn
NORMAL_SPEED = 12                # Speed that earns exactly one turn per round

# Combat
BLESSED_UNHOLY_MULTIPLIER = 1.5
CURSED_DAMAGE_PENALTY = 1
WEAKNESS_MULTIPLIER = 2
REFLECTABLE_KINDS = frozenset({"fire", "cold", "lightning", "acid"})
DEFAULT_TARGET_AC = 10
DEFAULT_ABILITY_COOLDOWN = 3
DIGESTION_KILL_THRESHOLD = 0.25
DIGESTION_KILL_CHANCE = 0.2
EQUIPMENT_DAMAGE_CHANCE = 0.3
GAZE_RANGE = 5
WEAPON_STUN_TURNS = 2
DEFAULT_CONDITION_DURATION = 3
DEATH_GAZE_KILL_CHANCE = 0.3
DRAIN_HP_PER_LEVEL = 10
STEAL_GOLD_MIN = 50
STEAL_GOLD_MAX = 149
WARP_RETREAT_THRESHOLD = 0.5     # Covetous warpers retreat below this HP fraction
WARP_RETREAT_RANGE = 15

# Notices
NOTICE_HISTORY_LIMIT = 100       # Entries kept by NoticeLog
DEBUG_NOTICES = os.environ.get("CREATURE_ENGINE_DEBUG_NOTICES", "1") != "0"

# Reproducible encounters: set CREATURE_ENGINE_SEED to an integer
_seed = os.environ.get("CREATURE_ENGINE_SEED")
RNG_SEED = int(_seed) if _seed and _seed.lstrip("-").isdigit() else None
