"""Read-only reports over the song history."""

from collections import OrderedDict

UNATTRIBUTED = "unattributed"


def summarize_history(history):
    """Totals, skip count and skip rate as a rounded percentage"""
    total = len(history)
    skipped = sum(1 for entry in history if entry["skipped"])
    return {
        "total_tracks": total,
        "skipped_tracks": skipped,
        "skip_rate": round(skipped / total * 100) if total else 0,
        "history": history,
    }


def most_downvoted(history):
    """Downvotes summed per (track name, artist), highest first"""
    totals = OrderedDict()
    for entry in history:
        key = (entry["track_name"], entry["artist"])
        if key not in totals:
            totals[key] = {"track_name": entry["track_name"], "artist": entry["artist"], "total": 0}
        totals[key]["total"] += entry["downvotes"] or 0

    return sorted(totals.values(), key=lambda row: row["total"], reverse=True)


def leaderboard(history):
    """Per-requester totals; requesters whose tracks get skipped least rank first"""
    board = OrderedDict()
    for entry in history:
        name = entry.get("added_by") or UNATTRIBUTED
        row = board.setdefault(name, {"requested_by": name, "played": 0, "skipped": 0, "downvotes": 0})
        row["played"] += 1
        row["skipped"] += 1 if entry["skipped"] else 0
        row["downvotes"] += entry["downvotes"] or 0

    return sorted(board.values(), key=lambda row: (row["skipped"], row["downvotes"], -row["played"]))
