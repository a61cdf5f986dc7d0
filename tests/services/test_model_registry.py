# tests/services/test_model_registry.py
from __future__ import annotations

import wmsgrn.models as models
from wmsgrn.db.base import Base, init_models


def test_init_models_registers_every_exported_model():
    init_models()
    init_models()  # 幂等

    tables = set(Base.metadata.tables)
    for _, cls in models.MODEL_SPECS:
        exported = getattr(models, cls)
        assert exported.__tablename__ in tables, cls
    assert sorted(models.__all__) == sorted(cls for _, cls in models.MODEL_SPECS)
