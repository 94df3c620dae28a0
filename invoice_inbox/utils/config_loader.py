import yaml
import os
from typing import Dict, Any, List

DEFAULT_STATUS_LABELS: Dict[str, str] = {
    "nouvelle": "Nouvelle",
    "a_verifier": "À vérifier",
    "complete": "Complète",
    "archive": "Archivée",
    "ocr_error": "Erreur OCR",
}

def load_yaml_config(file_path: str) -> Dict[str, Any]:
    """
    Safely loads a YAML configuration file.
    """
    if not os.path.exists(file_path):
        raise FileNotFoundError(f"Configuration file not found: {file_path}")

    with open(file_path, 'r', encoding='utf-8') as f:
        try:
            return yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ValueError(f"Error parsing YAML file {file_path}: {e}")

def load_workflow_config(file_path: str) -> Dict[str, Any]:
    """
    Loads the status workflow configuration.

    Returns a dict with:
    - status_labels: Dict[status, human label]
    - transitions: Dict[status, List[status]] or None (None = any status may go to any status)

    A missing file yields the built-in labels and the permissive workflow.
    """
    if not os.path.exists(file_path):
        return {"status_labels": dict(DEFAULT_STATUS_LABELS), "transitions": None}

    data = load_yaml_config(file_path)

    labels = dict(DEFAULT_STATUS_LABELS)
    labels.update(data.get("status_labels") or {})

    transitions = data.get("transitions")
    if transitions is not None:
        transitions = _normalize_transitions(transitions, labels, file_path)

    return {"status_labels": labels, "transitions": transitions}

def _normalize_transitions(raw: Any, labels: Dict[str, str], file_path: str) -> Dict[str, List[str]]:
    if not isinstance(raw, dict):
        raise ValueError(f"'transitions' in {file_path} must be a mapping of status -> [status]")

    graph = {}
    for source, targets in raw.items():
        targets = list(targets or [])
        unknown = [s for s in [source, *targets] if s not in labels]
        if unknown:
            raise ValueError(f"Unknown status in {file_path}: {', '.join(unknown)}")
        graph[source] = targets
    return graph
