"""Precision / recall measurement for duplicate detection quality.

Compares detected duplicate pairs against a labelled ground-truth set to
compute standard information-retrieval metrics.
"""

from __future__ import annotations

from collections.abc import Iterable

from supplierlens.models import DuplicateCandidate, MergeAction, pair_key


def predicted_pairs(
    candidates: Iterable[DuplicateCandidate],
    actions: Iterable[MergeAction] = (MergeAction.MERGE, MergeAction.MARK_DUPLICATE),
) -> set[str]:
    """Pair keys of candidates whose action counts as "same organisation"."""
    positive = set(actions)
    return {c.pair_key for c in candidates if c.suggested_action in positive}


def compute_resolution_metrics(
    candidates: Iterable[DuplicateCandidate],
    ground_truth: list[dict],
    *,
    actions: Iterable[MergeAction] = (MergeAction.MERGE, MergeAction.MARK_DUPLICATE),
) -> dict[str, float]:
    """Compute precision, recall, and F1 for duplicate detection.

    Parameters
    ----------
    candidates:
        Output of :func:`~supplierlens.entity_resolution.resolver.find_duplicates`.
    ground_truth:
        List of dicts each containing:
          - ``business1``: record id
          - ``business2``: record id
          - ``same_entity``: bool, whether these two records describe the
            same real-world organisation.
    actions:
        Suggested actions treated as a positive prediction.  Manual-review
        pairs are excluded by default.

    Returns
    -------
    dict
        ``{"precision": float, "recall": float, "f1": float,
          "true_positives": int, "false_positives": int,
          "false_negatives": int, "total_pairs": int}``
    """
    predicted = predicted_pairs(candidates, actions)

    true_positives = 0
    false_positives = 0
    false_negatives = 0

    for pair in ground_truth:
        expected_same = bool(pair["same_entity"])
        predicted_same = pair_key(str(pair["business1"]), str(pair["business2"])) in predicted

        if predicted_same and expected_same:
            true_positives += 1
        elif predicted_same and not expected_same:
            false_positives += 1
        elif not predicted_same and expected_same:
            false_negatives += 1
        # True negatives are not tracked (not useful for P/R/F1).

    precision = (
        true_positives / (true_positives + false_positives)
        if (true_positives + false_positives) > 0
        else 0.0
    )
    recall = (
        true_positives / (true_positives + false_negatives)
        if (true_positives + false_negatives) > 0
        else 0.0
    )
    f1 = (
        2 * precision * recall / (precision + recall)
        if (precision + recall) > 0
        else 0.0
    )

    return {
        "precision": precision,
        "recall": recall,
        "f1": f1,
        "true_positives": true_positives,
        "false_positives": false_positives,
        "false_negatives": false_negatives,
        "total_pairs": len(ground_truth),
    }


def generate_validation_report(metrics: dict[str, float]) -> str:
    """Format duplicate detection metrics into a human-readable report."""
    lines = [
        "Duplicate Detection Validation Report",
        "=" * 40,
        "",
        f"Labelled pairs:         {metrics.get('total_pairs', 0):.0f}",
        f"True positives:         {metrics.get('true_positives', 0):.0f}",
        f"False positives:        {metrics.get('false_positives', 0):.0f}",
        f"False negatives:        {metrics.get('false_negatives', 0):.0f}",
        "",
        f"Precision:  {metrics.get('precision', 0.0):.4f}",
        f"Recall:     {metrics.get('recall', 0.0):.4f}",
        f"F1 Score:   {metrics.get('f1', 0.0):.4f}",
    ]

    f1 = metrics.get("f1", 0.0)
    if f1 >= 0.95:
        lines.append("\nAssessment: EXCELLENT, safe to auto-merge")
    elif f1 >= 0.85:
        lines.append("\nAssessment: GOOD, auto-merge with spot checks")
    elif f1 >= 0.70:
        lines.append("\nAssessment: FAIR, route merges through manual review")
    else:
        lines.append("\nAssessment: POOR, tune weights and thresholds")

    return "\n".join(lines)
