from app.schemas.auth import RegisterRequest, LoginRequest, TokenResponse, UserResponse
from app.schemas.orders import OrderCreateRequest, OrderResponse, OrderListResponse
from app.schemas.payments import PaymentObservationRequest, SettlementResponse
from app.schemas.deeds import DeedResponse, DeedListResponse
