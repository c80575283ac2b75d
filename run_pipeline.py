# run_pipeline.py
from __future__ import annotations

import os
import subprocess
import sys
from datetime import datetime
from pathlib import Path
from typing import List, Tuple


ROOT = Path(__file__).resolve().parent
SRC_DIR = ROOT / "src"
SCRIPTS_DIR = ROOT / "scripts"


INGESTION_STEPS = [
    ("ingest_eforms_day", SCRIPTS_DIR / "ingest_eforms_day.py"),
    ("ingest_uk_awards", SCRIPTS_DIR / "ingest_uk_awards.py"),
]
REPAIR_STEP = ("repair_notices", SCRIPTS_DIR / "repair_notices.py")


def build_env() -> dict:
    """Environnement des sous-processus : src/ en tête du PYTHONPATH."""
    env = os.environ.copy()
    existing = env.get("PYTHONPATH", "")
    env["PYTHONPATH"] = str(SRC_DIR) + (os.pathsep + existing if existing else "")
    return env


def split_args(argv: List[str]) -> Tuple[bool, List[str]]:
    """
    Sépare l'option propre au runner (--repair) des arguments transmis
    aux scripts d'ingestion (--date, --all-cpv).
    """
    with_repair = "--repair" in argv
    forwarded = [arg for arg in argv if arg != "--repair"]
    return with_repair, forwarded


def run_step(name: str, script_path: Path, extra_args: List[str], env: dict) -> None:
    print(f"\n=== Étape: {name} ===")
    print(f"-> python {script_path.relative_to(ROOT)} {' '.join(extra_args)}".rstrip())

    result = subprocess.run(
        [sys.executable, str(script_path), *extra_args],
        cwd=str(ROOT),
        env=env,
        check=False,
    )

    if result.returncode != 0:
        raise RuntimeError(
            f"Échec de l'étape '{name}' (code retour={result.returncode}). "
            "Arrêt du pipeline."
        )


def main(argv: List[str]) -> None:
    print("============================================")
    print("  Pipeline veille marchés – eForms + UK")
    print("============================================")
    print(f"Racine projet : {ROOT}")
    print(f"Date/heure    : {datetime.now().isoformat(timespec='seconds')}")

    with_repair, forwarded = split_args(argv)
    env = build_env()

    for name, script in INGESTION_STEPS:
        run_step(name, script, forwarded, env)

    # La réparation porte sur toute la base : pas d'argument de date
    if with_repair:
        run_step(*REPAIR_STEP, [], env)

    print("\n✅ Pipeline terminé avec succès.")


if __name__ == "__main__":
    try:
        main(sys.argv[1:])
    except RuntimeError as e:
        print("\n❌ ERREUR dans le pipeline :", e)
        sys.exit(1)
