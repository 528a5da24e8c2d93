import logging
from typing import List, Tuple

import torch
import torch.nn.functional as F

from ...backend.se3 import SE3, as_pose
from ...parameters import AlgorithmParameters
from ..frame import BaseFrame, TemplateData
from .base import BasePoseEstimator, OptimizerStatistics, SolverStatus


class DirectPoseEstimator(BasePoseEstimator):
    """
    Direct photometric pose estimation.

    Aligns the current image against the reference template by minimizing
    intensity residuals I_cur(pi(T * X)) - I_ref(X) with robust Gauss-Newton,
    coarse to fine, from the coarsest pyramid level down to ``max_test_level``.
    Levels finer than ``max_test_level`` are not optimized.
    """

    def __init__(self, params: AlgorithmParameters):
        """
        Initialize direct pose estimator.

        Args:
            params: Algorithm parameters (iterations, tolerances, robust
                scale and the finest level to optimize)
        """
        self.params = params
        self.max_iterations = params.max_iterations
        self.parameter_tolerance = params.parameter_tolerance
        self.function_tolerance = params.function_tolerance
        self.huber_scale = params.huber_scale
        self.min_num_pixels = params.min_num_pixels_to_work

        self._weights = torch.zeros(0, dtype=torch.float64)
        self._covariance = torch.eye(6, dtype=torch.float64)

        self.logger = logging.getLogger(self.__class__.__name__)

    def estimate_pose(
        self, reference: BaseFrame, current: BaseFrame, seed_pose: torch.Tensor
    ) -> Tuple[List[OptimizerStatistics], torch.Tensor]:
        """
        Estimate the transform from the reference to the current frame.

        Args:
            reference: Templated reference frame
            current: Frame holding raw data with its pyramid built
            seed_pose: 4x4 initial guess

        Returns:
            Tuple of (statistics indexed by pyramid level, estimated transform)
        """
        num_levels = reference.num_levels()
        statistics = [OptimizerStatistics() for _ in range(num_levels)]
        T = as_pose(seed_pose)

        for level in range(num_levels - 1, self.params.max_test_level - 1, -1):
            statistics[level], T = self._optimize_level(reference, current, level, T)
            self.logger.debug(
                f"level {level}: error={statistics[level].final_error:.3f} "
                f"pixels={statistics[level].num_pixels} "
                f"iterations={statistics[level].num_iterations} "
                f"status={statistics[level].status.name}"
            )

        return statistics, T

    def get_weights(self) -> torch.Tensor:
        return self._weights

    def get_covariance(self) -> torch.Tensor:
        return self._covariance

    def _optimize_level(
        self, reference: BaseFrame, current: BaseFrame, level: int, T: torch.Tensor
    ) -> Tuple[OptimizerStatistics, torch.Tensor]:
        """
        Run Gauss-Newton at one pyramid level.

        Returns:
            Tuple of (statistics, refined transform)
        """
        template = reference.get_template_data_at_level(level)
        image = current.image_at_level(level)
        gx, gy = current.gradients_at_level(level)
        stats = OptimizerStatistics()

        if template.num_points < self.min_num_pixels:
            self.logger.debug(f"Too few template points at level {level}: {template.num_points}")
            stats.status = SolverStatus.ERROR
            if level == self.params.max_test_level:
                self._weights = torch.zeros(template.num_points, dtype=torch.float64)
                self._covariance = torch.eye(6, dtype=torch.float64)
            return stats, T

        prev_cost = float("inf")
        for iteration in range(self.max_iterations):
            residuals, J, valid = self._linearize(template, image, gx, gy, T)
            if int(valid.sum()) < self.min_num_pixels:
                stats.status = SolverStatus.ERROR
                break

            r = residuals[valid]
            Jv = J[valid]
            w = self._huber_weights(r)
            cost = float((w * r * r).sum())

            # Converged on the cost
            if abs(prev_cost - cost) <= self.function_tolerance * max(cost, 1.0):
                break
            prev_cost = cost

            H = Jv.t() @ (w.unsqueeze(1) * Jv)
            g = Jv.t() @ (w * r)
            delta = self._solve_normal_equations(H, -g)

            if not torch.isfinite(delta).all():
                self.logger.warning(f"Non-finite update at level {level}")
                stats.status = SolverStatus.ERROR
                break

            T = SE3.exp(delta).to_matrix() @ T
            stats.num_iterations = iteration + 1

            # Converged on the parameters
            if torch.linalg.norm(delta) < self.parameter_tolerance:
                break

        # Evaluate the final estimate
        residuals, J, valid = self._linearize(template, image, gx, gy, T)
        num_valid = int(valid.sum())
        weights = torch.zeros(template.num_points, dtype=torch.float64)

        if num_valid > 0:
            r = residuals[valid]
            w = self._huber_weights(r)
            weights[valid] = w
            stats.final_error = float((w * r * r).sum())
            stats.num_pixels = num_valid
            H = J[valid].t() @ (w.unsqueeze(1) * J[valid])
        else:
            stats.status = SolverStatus.ERROR
            H = torch.eye(6, dtype=torch.float64)

        if num_valid < self.min_num_pixels:
            stats.status = SolverStatus.ERROR

        if level == self.params.max_test_level:
            self._weights = weights
            self._covariance = torch.linalg.pinv(H)

        return stats, T

    def _linearize(
        self,
        template: TemplateData,
        image: torch.Tensor,
        gx: torch.Tensor,
        gy: torch.Tensor,
        T: torch.Tensor,
    ) -> Tuple[torch.Tensor, torch.Tensor, torch.Tensor]:
        """
        Compute photometric residuals and their Jacobian w.r.t. a left se(3)
        perturbation of T.

        Returns:
            Tuple of (residuals (N,), Jacobian (N, 6), validity mask (N,))
        """
        warp = template.warp
        X = SE3.from_matrix(T).transform_points(template.points)
        x, y, z = X[:, 0], X[:, 1], X[:, 2]

        in_front = z > 1e-6
        z = torch.where(in_front, z, torch.ones_like(z))

        u = warp.fx * x / z + warp.cx
        v = warp.fy * y / z + warp.cy

        height, width = image.shape
        valid = in_front & (u >= 0) & (u <= width - 1) & (v >= 0) & (v <= height - 1)

        # Bilinear sampling of the intensity and both gradients in one pass
        grid = torch.stack(
            [2.0 * u / max(width - 1, 1) - 1.0, 2.0 * v / max(height - 1, 1) - 1.0],
            dim=1,
        ).view(1, 1, -1, 2)
        channels = torch.stack([image, gx, gy]).unsqueeze(0)
        sampled = F.grid_sample(
            channels, grid, mode="bilinear", padding_mode="border", align_corners=True
        )[0, :, 0, :]
        intensity, grad_u, grad_v = sampled[0], sampled[1], sampled[2]

        residuals = intensity - template.intensities

        inv_z = 1.0 / z
        J_point = torch.stack(
            [
                grad_u * warp.fx * inv_z,
                grad_v * warp.fy * inv_z,
                -(grad_u * warp.fx * x + grad_v * warp.fy * y) * inv_z * inv_z,
            ],
            dim=1,
        )
        J = torch.cat([J_point, torch.cross(X, J_point, dim=1)], dim=1)

        residuals = torch.where(valid, residuals, torch.zeros_like(residuals))
        J = torch.where(valid.unsqueeze(1), J, torch.zeros_like(J))

        return residuals, J, valid

    def _huber_weights(self, residuals: torch.Tensor) -> torch.Tensor:
        """
        Huber weights with a scale estimated from the median absolute deviation.
        """
        abs_r = residuals.abs()
        sigma = 1.4826 * (residuals - residuals.median()).abs().median()
        k = self.huber_scale * max(float(sigma), 1e-6)
        return torch.where(abs_r <= k, torch.ones_like(abs_r), k / abs_r.clamp_min(1e-12))

    def _solve_normal_equations(self, H: torch.Tensor, b: torch.Tensor) -> torch.Tensor:
        try:
            return torch.linalg.solve(H, b)
        except RuntimeError:
            # If matrix is singular, use least squares
            return torch.linalg.lstsq(H, b.unsqueeze(1)).solution.squeeze(1)
