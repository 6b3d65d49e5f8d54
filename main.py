#!/usr/bin/env python3
"""
Mode learner demo driver.
Streams synthetic two-object scenes whose output follows one of two linear
laws depending on whether the objects touch, learns the modes online and
reports prediction accuracy on fresh scenes.

Usage:
    python main.py                                  # learn from 600 scenes
    python main.py --points 1000 --seed 3           # more data, other seed
    python main.py --save em.json                   # checkpoint after learning
    python main.py --load em.json --inspect mode 1  # query a saved learner
"""

import argparse
import logging
import sys
from typing import Dict, Tuple

import numpy as np

from modelearn import EM, InspectError, LoadError, Relation, SceneSig, inspect_em, load_em, save_em

logger = logging.getLogger()


def make_scene(rng: np.random.Generator) -> Tuple[SceneSig, Dict[str, Relation], np.ndarray, float]:
    """One scene: block b1 (the target) and block b2, touching half of the time."""
    sig = SceneSig()
    sig.add(1, 'block', 'b1', ['x'])
    sig.add(2, 'block', 'b2', ['x'])

    x = rng.uniform(-5.0, 5.0, size=2).round(3)
    touching = bool(rng.random() < 0.5)
    rels = {'touching': Relation(3), 'block': Relation(2)}
    rels['block'].add(0, (1,))
    rels['block'].add(0, (2,))
    if touching:
        rels['touching'].add(0, (1, 2))
        rels['touching'].add(0, (2, 1))
        y = 2.0 * x[0] + 1.0
    else:
        y = x[0] - 3.0 * x[1]
    return sig, rels, x, float(y)


def setup_logging(level: str):
    logger.setLevel(level)
    formatter = logging.Formatter("%(asctime)s | %(levelname)s | %(message)s")
    stdout_handler = logging.StreamHandler(sys.stdout)
    stdout_handler.setLevel(level)
    stdout_handler.setFormatter(formatter)
    logger.addHandler(stdout_handler)


def main():
    parser = argparse.ArgumentParser(description='Online mode learner demo')
    parser.add_argument('--points', type=int, default=600, help='Number of training scenes')
    parser.add_argument('--test-points', type=int, default=100, help='Number of evaluation scenes')
    parser.add_argument('--seed', type=int, default=0, help='Random seed for data and learner')
    parser.add_argument('--iterations', type=int, default=50, help='EM iteration budget')
    parser.add_argument('--save', type=str, help='Write a checkpoint to this path')
    parser.add_argument('--load', type=str, help='Start from a checkpoint instead of learning')
    parser.add_argument('--inspect', nargs='*', help='Run an introspection query, e.g. --inspect mode 1 model')
    parser.add_argument('--log-level', type=str, default='INFO',
                        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR'])
    args = parser.parse_args()

    setup_logging(args.log_level)
    rng = np.random.default_rng(args.seed)

    if args.load:
        try:
            with open(args.load, 'r', encoding='utf-8') as f:
                em = load_em(f)
        except (OSError, LoadError) as e:
            print(f"Failed to load checkpoint: {e}")
            sys.exit(1)
    else:
        em = EM(seed=args.seed)
        print(f"Learning from {args.points} scenes...")
        for _ in range(args.points):
            sig, rels, x, y = make_scene(rng)
            em.learn(0, sig, rels, x, y)

    converged = em.run(args.iterations)

    correct = 0
    for _ in range(args.test_points):
        sig, rels, x, y = make_scene(rng)
        pred = em.predict(0, sig, rels, x)
        if pred.success and abs(pred.y - y) < 1e-3:
            correct += 1

    print("\n" + "=" * 60)
    print("MODE LEARNER RESULTS")
    print("=" * 60)
    print(f"\nObservations: {em.ndata}")
    print(f"Modes (including noise): {em.nmodes}")
    print(f"Converged: {converged}")
    print(f"Noise points: {len(em.modes[0])}")
    print(f"Accuracy on {args.test_points} fresh scenes: {correct / max(1, args.test_points):.3f}")

    for j in range(1, em.nmodes):
        print(f"\n{'='*60}")
        print(f"MODE {j}: {len(em.modes[j])} members")
        print(f"  {inspect_em(em, ['mode', str(j), 'model'])}")

    if args.inspect is not None:
        print(f"\n{'='*60}")
        print(f"INSPECT {' '.join(args.inspect)}")
        try:
            print(inspect_em(em, args.inspect))
        except InspectError as e:
            print(f"  {e}")

    if args.save:
        with open(args.save, 'w', encoding='utf-8') as f:
            save_em(em, f)
        print(f"\nCheckpoint written to {args.save}")

    print("\n" + "=" * 60)
    print("Done.")
    print("=" * 60)


if __name__ == "__main__":
    main()
