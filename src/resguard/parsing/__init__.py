"""Bounded parsers for untrusted input.

Architecture::

    decompress.py   Decompression with output and ratio caps
    archives.py     Zip central-directory inspection, capped extraction
    images.py       Declared-dimension checks (Pillow)
    xmldoc.py       XML without entity expansion (defusedxml)
    deserialize.py  JSON / YAML / pickle with size, depth and key caps
    patterns.py     Regex shape vetting and input-length caps
"""
