"""crowdshield: crowd-sourced fraud intelligence and contact protection.

This package contains the core source code for the CrowdShield service, including
modules for identifier normalization, crowd risk scoring, per-channel protection
registration, alert fan-out, and one-time code verification.
"""
