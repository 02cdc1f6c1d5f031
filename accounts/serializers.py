from rest_framework_simplejwt.serializers import TokenObtainPairSerializer
from rest_framework_simplejwt.settings import api_settings


class LoginSerializer(TokenObtainPairSerializer):
    def validate(self, attrs):
        data = super().validate(attrs)

        data["access_token"] = data.pop("access")
        data["refresh_token"] = data.pop("refresh")
        # The mobile app needs role and tenant to pick its home screen
        data["role"] = self.user.role
        data["name"] = self.user.name
        data["email"] = self.user.email
        data["business_id"] = self.user.business_id

        data["token_type"] = "Bearer"
        data["expires_in"] = int(api_settings.ACCESS_TOKEN_LIFETIME.total_seconds())

        return data
