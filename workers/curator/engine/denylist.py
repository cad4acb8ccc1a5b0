from __future__ import annotations

import json
import logging

logger = logging.getLogger(__name__)

# Vote-selling services, trails and bid bots whose votes say nothing about quality.
AUTOMATED_VOTERS: frozenset[str] = frozenset(
    {
        "animus", "appreciator", "arama", "ausbitbot", "bago", "bambam808", "banjo", "barrie",
        "bellyrub", "besttocome215", "bierkaart", "biskopakon", "blackwidow7", "blimbossem",
        "boomerang", "booster", "boostupvote", "bowlofbitcoin", "bp423", "brandybb", "brensker",
        "btcvenom", "buildawhale", "burdok213", "businessbot", "centerlink", "cleverbot",
        "cnbuddy", "counterbot", "crypto-hangouts", "cryptobooty", "cryptoholic", "cryptoowl",
        "cub1", "curationrus", "dahrma", "davidding", "decibel", "deutschbot", "dirty.hera",
        "discordia", "done", "drakkald", "drotto", "earthboundgiygas", "edrivegom", "emilhoch",
        "eoscrusher", "famunger", "feedyourminnows", "followforupvotes", "frontrunner",
        "fuzzyvest", "gamerpool", "gamerveda", "gaming-hangouts", "gindor", "givemedatsteem",
        "givemesteem1", "glitterbooster", "gonewhaling", "gotvotes", "gpgiveaways", "gsgaming",
        "guarddog", "heelpopulair", "helpfulcrypto", "idioticbot", "ikwindje", "ilvacca",
        "inchonbitcoin", "ipuffyou", "lovejuice", "mahabrahma", "make-a-whale", "makindatsteem",
        "maradaratar", "minnowbooster", "minnowhelper", "minnowpond", "minnowpondblue",
        "minnowpondred", "misterwister", "moonbot", "morwhale", "moses153", "moyeses",
        "msp-lovebot", "msp-shanehug", "msp-venezuela", "msp-music", "msp-mods", "msp-africa",
        "msp-canada", "muxxybot", "myday", "ninja-whale", "ninjawhale", "officialfuzzy",
        "perennial", "pimpoesala", "polsza", "portoriko", "prambarbara", "proctologic",
        "pumpingbitcoin", "pushup", "qurator", "qwasert", "raidrunner", "ramta", "randovote",
        "randowhale", "randowhale0", "randowhale1", "randowhaletrail", "randowhaling",
        "reblogger", "resteem.bot", "resteemable", "resteembot", "russiann", "scamnotifier",
        "scharmebran", "siliwilly", "sneaky-ninja", "sniffo35", "soonmusic", "spinbot",
        "stackin", "steemedia", "steemholder", "steemit-gamble", "steemit-hangouts",
        "steemitgottalent", "steemmaker", "steemmemes", "steemminers", "steemode",
        "steemprentice", "steemsquad", "steemthat", "steemvoter", "stephen.king989", "tabea",
        "tarmaland", "timbalabuch", "trail1", "trail2", "trail3", "trail4", "trail5", "trail6",
        "trail7", "viraltrend", "votey", "waardanook", "wahyurahadiann", "wannabeme",
        "weareone1", "whatamidoing", "whatupgg", "wildoekwind", "wiseguyhuh", "wistoepon",
        "zdashmash", "zdemonz", "zhusatriani",
    }
)


def load_denylist(extra_json: str | None) -> frozenset[str]:
    if not extra_json:
        return AUTOMATED_VOTERS
    try:
        decoded = json.loads(extra_json)
    except json.JSONDecodeError:
        logger.warning("ignoring malformed automated voter list")
        return AUTOMATED_VOTERS
    if not isinstance(decoded, list):
        return AUTOMATED_VOTERS
    extra = {item.strip().lower() for item in decoded if isinstance(item, str) and item.strip()}
    return AUTOMATED_VOTERS | extra
