"""
Linear Kalman Filter for Bounding Box Tracking

Implements a Constant Velocity (CV) motion model over box center and size.
One predict step corresponds to one processed frame.

State Vector: [cx, cy, w, h, vx, vy, vw, vh]^T
    - cx, cy: Box center (pixels)
    - w, h: Box size (pixels)
    - vx, vy, vw, vh: Per-frame rates of change

Measurement Vector: [cx, cy, w, h]^T

Reference:
    - Bar-Shalom, Y. "Estimation with Applications to Tracking and Navigation", 2001
    - Bewley, A. et al. "Simple Online and Realtime Tracking", ICIP 2016
"""

from dataclasses import dataclass

import numpy as np

from .detection import BoundingBox

STATE_DIM = 8
MEASUREMENT_DIM = 4

# Predicted boxes never shrink below this size (pixels)
MIN_BOX_SIZE = 1.0


@dataclass
class KalmanState:
    """
    State container for Kalman Filter.

    Attributes:
        x: State vector [cx, cy, w, h, vx, vy, vw, vh]
        P: State covariance matrix (8x8)
    """

    x: np.ndarray  # State vector
    P: np.ndarray  # Covariance matrix


class BoxKalmanFilter:
    """
    Linear Kalman Filter for 2D bounding box tracking.

    Uses Constant Velocity (CV) motion model with unit time step:
        cx_{k+1} = cx_k + vx_k
        w_{k+1}  = w_k + vw_k
        v_{k+1}  = v_k (constant)

    Process and measurement noise are fixed, so uncertainty grows by the
    same amount on every predict-only (missed) frame.

    Example:
        >>> kf = BoxKalmanFilter(process_noise=1.0, measurement_noise=4.0)
        >>> state = kf.initialize(BoundingBox(100, 50, 40, 80))
        >>> state = kf.predict(state)
        >>> state = kf.update(state, BoundingBox(103, 51, 40, 80))
    """

    def __init__(
        self,
        process_noise: float = 1.0,
        measurement_noise: float = 4.0,
        position_uncertainty: float = 10.0,
        velocity_uncertainty: float = 10.0,
    ) -> None:
        """
        Initialize Kalman Filter.

        Args:
            process_noise: Process noise standard deviation (pixels/frame)
                          Higher = more responsive to maneuvers
            measurement_noise: Measurement noise standard deviation (pixels)
                              Higher = smoother tracks, slower response
            position_uncertainty: Initial std of center and size (pixels)
            velocity_uncertainty: Initial std of rates (pixels/frame)
        """
        self.process_noise = process_noise
        self.measurement_noise = measurement_noise
        self.position_uncertainty = position_uncertainty
        self.velocity_uncertainty = velocity_uncertainty

        # Transition matrix F (dt = 1 frame)
        self.F = np.eye(STATE_DIM, dtype=np.float64)
        for i in range(MEASUREMENT_DIM):
            self.F[i, i + MEASUREMENT_DIM] = 1.0

        # Measurement matrix H: observe [cx, cy, w, h]
        self.H = np.eye(MEASUREMENT_DIM, STATE_DIM, dtype=np.float64)

        # Discrete white noise acceleration model, dt = 1:
        # G = [1/2, 1]  ->  Q = G G^T q^2 per axis
        q2 = process_noise**2
        self.Q = np.zeros((STATE_DIM, STATE_DIM), dtype=np.float64)
        for i in range(MEASUREMENT_DIM):
            j = i + MEASUREMENT_DIM
            self.Q[i, i] = 0.25 * q2
            self.Q[i, j] = self.Q[j, i] = 0.5 * q2
            self.Q[j, j] = q2

        # Measurement noise covariance R
        self.R = np.eye(MEASUREMENT_DIM, dtype=np.float64) * (measurement_noise**2)

    def initialize(self, bbox: BoundingBox) -> KalmanState:
        """
        Initialize a new track state from a first observation.

        Velocities start at zero with a large uncertainty.
        """
        cx, cy = bbox.center
        x = np.array([cx, cy, bbox.width, bbox.height, 0.0, 0.0, 0.0, 0.0], dtype=np.float64)

        P = np.diag(
            [self.position_uncertainty**2] * MEASUREMENT_DIM
            + [self.velocity_uncertainty**2] * MEASUREMENT_DIM
        ).astype(np.float64)

        return KalmanState(x=x, P=P)

    def predict(self, state: KalmanState) -> KalmanState:
        """
        Predict state to next frame.

        Prediction equations:
            x_pred = F * x
            P_pred = F * P * F^T + Q
        """
        x_pred = self.F @ state.x

        # Size must stay positive; stop a collapsing box from inverting
        for i in (2, 3):
            if x_pred[i] < MIN_BOX_SIZE:
                x_pred[i] = MIN_BOX_SIZE
                x_pred[i + MEASUREMENT_DIM] = 0.0

        P_pred = self.F @ state.P @ self.F.T + self.Q

        return KalmanState(x=x_pred, P=P_pred)

    def update(self, state: KalmanState, bbox: BoundingBox) -> KalmanState:
        """
        Update state with an associated observation.

        Update equations:
            y = z - H * x          (innovation)
            S = H * P * H^T + R    (innovation covariance)
            K = P * H^T * S^-1     (Kalman gain)
            x_new = x + K * y
            P_new = (I - K * H) * P * (I - K * H)^T + K * R * K^T
        """
        cx, cy = bbox.center
        z = np.array([cx, cy, bbox.width, bbox.height], dtype=np.float64)

        y = z - self.H @ state.x
        S = self.H @ state.P @ self.H.T + self.R
        K = state.P @ self.H.T @ np.linalg.inv(S)

        x_new = state.x + K @ y

        # Joseph form for numerical stability
        I_KH = np.eye(STATE_DIM) - K @ self.H
        P_new = I_KH @ state.P @ I_KH.T + K @ self.R @ K.T

        return KalmanState(x=x_new, P=P_new)

    def to_bbox(self, state: KalmanState) -> BoundingBox:
        """Box estimate held in the state."""
        cx, cy, w, h = state.x[:MEASUREMENT_DIM]
        return BoundingBox.from_center(cx, cy, max(w, MIN_BOX_SIZE), max(h, MIN_BOX_SIZE))

    def position_sigma(self, state: KalmanState) -> float:
        """RMS standard deviation of the center estimate (pixels)."""
        return float(np.sqrt(0.5 * (state.P[0, 0] + state.P[1, 1])))
