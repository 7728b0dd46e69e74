from stereomux import main

main()
