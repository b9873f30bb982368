"""Forms validating the JSON bodies posted to the ticketing endpoints."""

from decimal import Decimal

from django import forms


class CustomerForm(forms.Form):
    """Buyer details collected on the booking page."""

    first_name = forms.CharField(max_length=100, strip=True)
    last_name = forms.CharField(max_length=100, strip=True)
    email = forms.EmailField()
    phone = forms.CharField(max_length=50, required=False, strip=True)

    @property
    def full_name(self) -> str:
        return f"{self.cleaned_data['first_name']} {self.cleaned_data['last_name']}"


class CartLineForm(forms.Form):
    """One requested category and quantity."""

    category_id = forms.IntegerField(min_value=1)
    quantity = forms.IntegerField(min_value=1)


class RedeemForm(forms.Form):
    """A scanned redemption code."""

    code = forms.CharField(max_length=64, strip=True)


class CategoryUpdateForm(forms.Form):
    """Staff edits to a ticket category. Omitted fields are left unchanged."""

    name = forms.CharField(max_length=200, required=False, strip=True)
    price = forms.DecimalField(max_digits=10, decimal_places=2, min_value=Decimal("0.00"), required=False)
    total_quantity = forms.IntegerField(min_value=0, required=False)

    def clean(self) -> dict:
        """Require at least one field to change."""
        cleaned = super().clean()
        if not cleaned.get("name") and cleaned.get("price") is None and cleaned.get("total_quantity") is None:
            raise forms.ValidationError("Provide at least one of name, price or totalQuantity.")
        return cleaned
