from .verification_service import VerificationService, serialize_result

__all__ = ['VerificationService', 'serialize_result']
