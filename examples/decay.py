import numpy as np
import sympy as sp

from odegen import build_procedure, materialize

a, b, gamma, kappa = sp.symbols("a b gamma kappa")

program = build_procedure([(a, -gamma * a), (b, kappa * a)], [gamma, kappa])
print(program.source)

ode = materialize(program, jit=True)
du = np.zeros(2)
ode(du, np.array([1.0, 0.0]), np.array([0.5, 2.0]), 0.0)
print("du =", du)
