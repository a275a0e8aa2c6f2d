from .normalizer import ProcessingReport, WebhookNormalizer, WebhookUnmatched, normalize_phone

__all__ = ["ProcessingReport", "WebhookNormalizer", "WebhookUnmatched", "normalize_phone"]
