"""Kernel services. Each takes a Session, flushes, and never commits."""
