"""
Contains JSON schema for the Prometheus targets API response.

This is used to validate the payload returned by /api/v1/targets (or a
snapshot file of it) before it is turned into ServiceMap objects.
"""

NON_EMPTY_STRING = {"type": "string", "minLength": 1}

LABELS_DICT_SCHEMA = {
    "description": "Label name to label value, keys are not known in advance",
    "type": "object",
    "additionalProperties": {"type": "string"},
}

ACTIVE_TARGET_SCHEMA = {
    "description": "A target Prometheus is currently scraping",
    "type": "object",
    "properties": {
        "scrapePool": NON_EMPTY_STRING,
        "discoveredLabels": LABELS_DICT_SCHEMA,
        "labels": LABELS_DICT_SCHEMA,
    },
    "required": ["scrapePool", "discoveredLabels", "labels"],
}

DROPPED_TARGET_SCHEMA = {
    "description": "A target dropped by relabeling before it was scraped",
    "type": "object",
    "properties": {
        "discoveredLabels": {
            **LABELS_DICT_SCHEMA,
            "properties": {"job": NON_EMPTY_STRING},
            "required": ["job"],
        },
    },
    "required": ["discoveredLabels"],
}

DROPPED_TARGET_COUNTS_SCHEMA = {
    "description": "Scrape pool to number of dropped targets",
    "type": "object",
    "additionalProperties": {"type": "integer", "minimum": 0},
}

SERVICE_MAP_SCHEMA = {
    "description": "Format of the data object of the targets API response",
    "type": "object",
    "properties": {
        "activeTargets": {"type": "array", "items": ACTIVE_TARGET_SCHEMA},
        "droppedTargets": {"type": "array", "items": DROPPED_TARGET_SCHEMA},
        "droppedTargetCounts": DROPPED_TARGET_COUNTS_SCHEMA,
    },
    "required": ["activeTargets", "droppedTargets"],
}

TARGETS_RESPONSE_SCHEMA = {
    "description": "Format of the whole targets API response",
    "type": "object",
    "properties": {
        "status": {"enum": ["success", "error"]},
        "data": SERVICE_MAP_SCHEMA,
        "error": {"type": "string"},
    },
    "required": ["status"],
}
