"""Signal publishing: quota, dedup and the post log."""

from prescience.publishing.publisher import Publisher, PublishResult, score_candidates

__all__ = ["PublishResult", "Publisher", "score_candidates"]
