"""Secure Share API: one-time and time-limited file sharing over S3 and MongoDB."""
