"""Instructor live session flags."""
