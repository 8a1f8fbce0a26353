"""Memorable username generation in adjective-animal form (e.g. swift-falcon)."""
import secrets

ADJECTIVES = (
    "swift", "brave", "calm", "dark", "eager", "fair", "gentle", "happy", "idle", "jolly",
    "keen", "lucky", "merry", "noble", "proud", "quick", "rapid", "sharp", "strong", "true",
    "vivid", "warm", "wise", "young", "zesty", "agile", "bold", "cool", "deft", "elite",
    "fast", "grand", "hale", "iron", "jade", "kind", "lush", "mild", "neat", "open",
    "pure", "quiet", "rare", "safe", "tall", "ultra", "vast", "wild", "amber", "azure",
    "coral", "cyber", "lunar", "neon", "pixel", "solar",
)

ANIMALS = (
    "falcon", "otter", "tiger", "wolf", "eagle", "hawk", "lion", "bear", "fox", "deer",
    "owl", "crow", "heron", "lynx", "puma", "raven", "shark", "whale", "dolphin", "panther",
    "jaguar", "cobra", "viper", "python", "crane", "finch", "robin", "wren", "duck", "goose",
    "swan", "seal", "walrus", "badger", "ferret", "mink", "stoat", "hare", "rabbit", "moose",
    "elk", "bison", "horse", "zebra", "giraffe", "hippo", "rhino", "koala", "panda", "lemur",
    "gecko", "iguana", "turtle", "frog", "newt",
)


def generate_username() -> str:
    """Random ``adjective-animal`` username."""
    return f"{secrets.choice(ADJECTIVES)}-{secrets.choice(ANIMALS)}"


def generate_username_with_suffix() -> str:
    """Random ``adjective-animal-NN`` username, for when the short form collides."""
    return f"{generate_username()}-{10 + secrets.randbelow(90)}"
