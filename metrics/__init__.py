"""Metric models and series registry"""
