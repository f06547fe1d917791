"""
Code Email Template
Renders the subject, plaintext and HTML parts of a one-time code email
"""

from typing import Any, Dict, Tuple


class CodeEmailTemplate:
    """Email carrying a one-time code and how long it stays valid"""

    def __init__(self, config: Dict[str, Any]):
        """
        Args:
            config: Template configuration dict with keys:
                - subject: Email subject line
                - heading: Title shown above the code
                - instructions: One sentence telling the reader what to do
                - accent_color: Colour of the code in the HTML part
        """
        self.config = config

    def render(self, code: str, ttl_minutes: int) -> Tuple[str, str, str]:
        """Return (subject, text, html)"""
        heading = self.config['heading']
        instructions = self.config['instructions']
        accent = self.config.get('accent_color', '#3c82f6')
        minutes = "minute" if ttl_minutes == 1 else "minutes"

        # Plaintext fallback for clients that don't render HTML
        text = f"""
{heading}

Code: {code}

{instructions}
This code expires in {ttl_minutes} {minutes}.
If you didn't request this, you can safely ignore this email.
"""

        # Table-based HTML renders consistently across Yahoo/Gmail/Outlook
        html = f"""
<!DOCTYPE html>
<html>
  <head>
    <meta http-equiv="Content-Type" content="text/html; charset=utf-8">
    <meta name="viewport" content="width=device-width, initial-scale=1.0">
    <title>{heading}</title>
  </head>
  <body style="margin:0; padding:0; background-color:#f6f7f9;">
    <table role="presentation" cellpadding="0" cellspacing="0" border="0" width="100%" style="background-color:#f6f7f9;">
      <tr>
        <td align="center" style="padding:24px 12px;">
          <table role="presentation" cellpadding="0" cellspacing="0" border="0" width="480" style="width:480px; max-width:480px; background-color:#ffffff; border:1px solid #eeeeee; border-radius:16px;">
            <tr>
              <td align="center" style="padding:32px 24px 8px 24px; font-family:Arial, sans-serif;">
                <div style="font-size:20px; color:#111827; font-weight:700;">{heading}</div>
              </td>
            </tr>
            <tr>
              <td align="center" style="padding:8px 24px 16px 24px;">
                <div style="font-family:Arial, sans-serif; font-size:40px; letter-spacing:8px; color:{accent}; font-weight:700;">{code}</div>
              </td>
            </tr>
            <tr>
              <td align="center" style="padding:0 24px 8px 24px;">
                <div style="font-family:Arial, sans-serif; font-size:16px; color:#374151;">{instructions}</div>
              </td>
            </tr>
            <tr>
              <td align="center" style="padding:0 24px 24px 24px;">
                <div style="font-family:Arial, sans-serif; font-size:14px; color:#374151;">This code expires in {ttl_minutes} {minutes}.</div>
              </td>
            </tr>
            <tr>
              <td align="center" style="padding:0 24px 32px 24px;">
                <div style="font-family:Arial, sans-serif; font-size:14px; color:#6b7280;">If you didn't request this, you can safely ignore this email.</div>
              </td>
            </tr>
          </table>
        </td>
      </tr>
    </table>
  </body>
</html>
"""
        return self.config['subject'], text, html
