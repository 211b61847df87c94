"""
Mapping Module - Black Box Interface

Purpose: Translate on-disk module ids into runtime registry keys
Interface: IdentityMapper.resolve(), verify(), IdentityMapper.from_file()
Hidden: YAML table lookup order, fallback naming rule

The table is static configuration and is never mutated at runtime.
"""

from .mapper import IdentityMapper, RegistryTableFile, load_table, split_words

__all__ = ["IdentityMapper", "RegistryTableFile", "load_table", "split_words"]
