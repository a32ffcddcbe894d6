from donorsync import create_app

app = create_app()

# Ensure the app runs only if this script is executed directly
if __name__ == '__main__':
    app.run(debug=True)
