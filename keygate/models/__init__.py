from keygate.models.api_key import ApiKeyRecord, UsageRecord

__all__ = ["ApiKeyRecord", "UsageRecord"]
