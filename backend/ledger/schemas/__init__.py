"""Pydantic command and result schemas"""
