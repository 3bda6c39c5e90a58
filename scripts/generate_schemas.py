"""Generate JSON schemas from Pydantic models and save to schemas/ directory.

Run against the installed package (pip install -e .).
"""

import json
from pathlib import Path

from chainproof.config import EngineConfig
from chainproof.kernel.proof import ProofArtifact
from chainproof.kernel.records import StepRecord


SCHEMAS = {
    "proof_artifact.schema.json": ProofArtifact,
    "step_record.schema.json": StepRecord,
    "engine_config.schema.json": EngineConfig,
}


def generate_schemas():
    """Generate JSON schemas for all persisted models."""
    schemas_dir = Path(__file__).parent.parent / "schemas"
    schemas_dir.mkdir(exist_ok=True)

    for filename, model in SCHEMAS.items():
        schema_path = schemas_dir / filename
        with open(schema_path, 'w', encoding='utf-8') as f:
            json.dump(model.model_json_schema(), f, indent=2, ensure_ascii=False)
        print(f"Generated: {schema_path}")

    print("\nSchema generation complete!")


if __name__ == "__main__":
    generate_schemas()
