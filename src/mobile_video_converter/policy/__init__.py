"""Conversion policy: compatibility rules, encode profiles and plans."""
