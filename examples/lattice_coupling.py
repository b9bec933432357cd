import numpy as np
import sympy as sp
from scipy.integrate import solve_ivp

from odegen import build_procedure, export_program_source, family, index, materialize, site_sum

N = sp.Symbol("N", integer=True, positive=True)
i, j = index("i", 1, N), index("j", 1, N)
n, J = family("n"), family("J")

# d(n_i) = sum_{j != i} J_ij (n_j - n_i)
program = build_procedure([(n[i], site_sum(J[i, j] * (n[j] - n[i]), j, unequal_to=i))], [N, J])
print(program.source)
export_program_source(program, "lattice_ode.py")

sites = 8
rng = np.random.default_rng(0)
coupling = rng.uniform(0.0, 1.0, size=(sites, sites))
coupling = 0.5 * (coupling + coupling.T)
y0 = rng.uniform(size=sites)

ode = materialize(program, jit=True)
sol = solve_ivp(ode.as_solve_ivp((sites, coupling)), (0.0, 20.0), y0, rtol=1e-8)
print("initial:", np.round(y0, 4))
print("final:  ", np.round(sol.y[:, -1], 4))
print("mean conserved:", np.isclose(y0.mean(), sol.y[:, -1].mean()))
