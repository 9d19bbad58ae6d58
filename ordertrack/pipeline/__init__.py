"""Order import pipeline.

Reconciles validated import records against the active partition and
applies the resulting create/update/remove decisions.
"""
