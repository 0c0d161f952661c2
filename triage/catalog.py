"""
triage/catalog.py
Threat-intelligence rule packs ("tidb") used to name cluster labels.

Each file matching the configured glob is one gzip-compressed JSON
rule pack. A pack that cannot be read or validated is logged and
skipped; the rest still load.
"""

from __future__ import annotations

import glob
import gzip
import logging
import zlib
from pathlib import Path
from typing import Dict, List, Optional, Union

from triage.models.record import CatalogId, RuleId
from triage.models.schemas import Rule, RulePack

logger = logging.getLogger(__name__)


def read_rule_pack(path: Union[str, Path]) -> RulePack:
    """Decompress and validate one pack. Raises OSError / ValueError."""
    try:
        with gzip.open(path, 'rb') as f:
            raw = f.read()
    except zlib.error as e:
        raise ValueError(f"corrupt rule pack {path}: {e}") from e
    return RulePack.from_bytes(raw)


class RuleCatalog:
    """Loaded rule packs, indexed by catalog id."""

    def __init__(self, packs: List[RulePack]):
        self._packs: Dict[CatalogId, RulePack] = {}
        self._rules: Dict[CatalogId, Dict[RuleId, Rule]] = {}
        for pack in packs:
            if pack.id in self._packs:
                logger.warning(
                    f"duplicate catalog id {pack.id} ({pack.name} {pack.version}) ignored"
                )
                continue
            self._packs[pack.id] = pack
            rules: Dict[RuleId, Rule] = {}
            for rule in pack.rules:
                rules.setdefault(rule.rule_id, rule)
            self._rules[pack.id] = rules

    @classmethod
    def load(cls, pattern: str) -> 'RuleCatalog':
        packs: List[RulePack] = []
        for path in sorted(glob.glob(pattern)):
            logger.info(f"loading {path}")
            try:
                packs.append(read_rule_pack(path))
            except (OSError, EOFError, ValueError) as e:
                logger.error(f"cannot load rule pack {path}: {e}")
        return cls(packs)

    def __len__(self) -> int:
        return len(self._packs)

    @property
    def packs(self) -> List[RulePack]:
        return list(self._packs.values())

    def name_of(self, catalog_id: CatalogId) -> Optional[str]:
        pack = self._packs.get(catalog_id)
        return pack.name if pack else None

    def rule(self, catalog_id: CatalogId, rule_id: RuleId) -> Optional[Rule]:
        return self._rules.get(catalog_id, {}).get(rule_id)

    def label_name(self, catalog_id: CatalogId, rule_id: RuleId) -> Optional[str]:
        """
        Rule name, or the catalog's own name when the catalog is known but
        the rule is not. None for an unknown catalog.
        """
        pack = self._packs.get(catalog_id)
        if pack is None:
            return None
        rule = self._rules[catalog_id].get(rule_id)
        return rule.name if rule else pack.name

    def describe_rule(self, catalog_id: CatalogId, rule_id: RuleId) -> Optional[List[str]]:
        rule = self.rule(catalog_id, rule_id)
        if rule is None:
            return None
        lines = [
            f"Name: {rule.name}",
            f"Description:\n\t{rule.description or ''}",
            f"References:\n\t{', '.join(rule.references or [])}",
        ]
        if rule.samples:
            lines.append("Samples:")
            lines.extend(f"\t{s}" for s in rule.samples)
        lines.append(f"Signatures:\n\t{', '.join(rule.signatures or [])}")
        return lines
