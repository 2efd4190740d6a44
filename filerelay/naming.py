import logging
import random
from typing import Callable, Optional

from .storage import EphemeralStore

MAX_NAME_ATTEMPTS = 10

ADJECTIVES = (
    "able", "agile", "amber", "ample", "azure", "balmy", "bold", "brave",
    "breezy", "brief", "bright", "brisk", "calm", "candid", "chief", "civil",
    "clean", "clear", "clever", "cosmic", "cozy", "crisp", "curly", "daring",
    "dapper", "deft", "dusky", "eager", "early", "easy", "elder", "ember",
    "epic", "fair", "fancy", "fast", "fervent", "fine", "fleet", "fluffy",
    "fond", "frank", "free", "fresh", "frosty", "gentle", "giant", "glad",
    "golden", "grand", "happy", "hardy", "hazel", "hearty", "honest", "humble",
    "icy", "ideal", "jolly", "jovial", "keen", "kind", "large", "lavish",
    "lively", "lucky", "lunar", "mellow", "merry", "mighty", "misty", "modest",
    "mossy", "noble", "nimble", "olive", "plucky", "polite", "proud", "quick",
    "quiet", "rapid", "rare", "ready", "regal", "rosy", "royal", "rustic",
    "sandy", "savvy", "serene", "sharp", "shiny", "silent", "silky", "sleek",
    "smooth", "snowy", "solar", "solid", "spry", "stable", "steady", "stormy",
    "sturdy", "sunny", "super", "sweet", "swift", "tidy", "tiny", "tough",
    "tranquil", "true", "upbeat", "urban", "valid", "vast", "velvet", "vivid",
    "warm", "wavy", "wild", "windy", "wise", "witty", "young", "zesty",
)

ANIMALS = (
    "alpaca", "badger", "bat", "bear", "beaver", "bison", "boar", "bobcat",
    "camel", "canary", "caribou", "cat", "cheetah", "cobra", "condor", "cougar",
    "coyote", "crab", "crane", "crow", "deer", "dingo", "dolphin", "donkey",
    "dove", "duck", "eagle", "eel", "egret", "elk", "emu", "falcon",
    "ferret", "finch", "fox", "frog", "gazelle", "gecko", "gibbon", "goat",
    "goose", "gopher", "gorilla", "grouse", "gull", "hare", "hawk", "hedgehog",
    "heron", "hippo", "horse", "husky", "ibex", "ibis", "iguana", "impala",
    "jackal", "jaguar", "jay", "kestrel", "kiwi", "koala", "lemur", "leopard",
    "lion", "lizard", "llama", "lobster", "lynx", "macaw", "magpie", "mantis",
    "marmot", "marten", "mink", "mole", "moose", "moth", "mouse", "narwhal",
    "newt", "ocelot", "octopus", "okapi", "orca", "osprey", "otter", "owl",
    "ox", "panda", "panther", "parrot", "pelican", "penguin", "pigeon", "puffin",
    "puma", "python", "quail", "rabbit", "raccoon", "raven", "robin", "salmon",
    "seal", "shark", "sheep", "shrew", "skunk", "sloth", "snail", "sparrow",
    "squid", "stork", "swan", "tapir", "tiger", "toad", "toucan", "trout",
    "turtle", "viper", "walrus", "weasel", "whale", "wolf", "wombat", "yak",
)

logger = logging.getLogger("filerelay.naming")


class NameSpaceExhaustedError(RuntimeError):
    """Raised when no free name was found within the attempt budget."""

    def __init__(self, ext: str, attempts: int) -> None:
        super().__init__(f"No free name for extension {ext!r} after {attempts} attempts")
        self.ext = ext
        self.attempts = attempts


def combination_count() -> int:
    return len(ADJECTIVES) * len(ANIMALS)


def generate(rng: Optional[random.Random] = None) -> str:
    """Return a short ``adjective-animal`` identifier such as ``swift-otter``."""

    chooser = rng or random
    return f"{chooser.choice(ADJECTIVES)}-{chooser.choice(ANIMALS)}"


def generate_unique(
    store: EphemeralStore,
    ext: str,
    attempts: int = MAX_NAME_ATTEMPTS,
    generator: Callable[[], str] = generate,
) -> str:
    """Return a name whose ``{name}.{ext}`` is claimed in ``store``.

    The claim is held until :meth:`EphemeralStore.write` finishes with it, so
    concurrent callers are never handed the same file name.
    """

    for attempt in range(attempts):
        name = generator()
        if store.claim(f"{name}.{ext}"):
            if attempt:
                logger.debug("name_collision_resolved name=%s.%s attempts=%d", name, ext, attempt + 1)
            return name
        logger.debug("name_collision name=%s.%s attempt=%d", name, ext, attempt + 1)

    raise NameSpaceExhaustedError(ext, attempts)
